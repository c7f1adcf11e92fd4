"""anilist_login.py

Terminal login helper for environments without a local callback server.

Key features
------------
* ``login``  – prints the consent URL, then reads the redirect URI the browser
  landed on (``--redirect-uri`` or pasted on stdin) and exchanges its code
* ``status`` – prints whether a session is stored and who it belongs to
* ``logout`` – forgets the stored session
* Settings come from ``ANILIST_OAUTH_*`` env vars, optionally seeded from a
  ``.env`` style file (``--env-file``); existing env vars win
* Never prints tokens

Example
-------
    python scripts/anilist_login.py login
    python scripts/anilist_login.py status
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

from anilist_session.auth import AuthSessionManager, DiskCredentialStore, OAuthClientConfig
from anilist_session.utils.logging import configure_logging

DEFAULT_ENV_FILE = Path(".env")


# --------------------------------------------------------------------------- #
# Environment helpers
# --------------------------------------------------------------------------- #
def _load_env_file(env_path: Path | None) -> None:
    """Load KEY=VALUE pairs from a .env style file into *os.environ*.

    Values may be wrapped in single or double quotes; the quotes are stripped.
    Variables already present in the environment are left alone.
    """
    if env_path is None or not env_path.exists():
        return

    for raw in env_path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip("'\"")
        if key and key not in os.environ:
            os.environ[key] = val


def _build_manager(args: argparse.Namespace) -> AuthSessionManager:
    config = OAuthClientConfig.from_env(prefix=args.env_prefix)
    store = DiskCredentialStore(args.storage_dir, storage_key=config.storage_key)
    return AuthSessionManager(config, store=store)


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #
async def _cmd_login(manager: AuthSessionManager, redirect_uri: str | None) -> int:
    print("Open this URL in a browser and approve access:\n")
    print(f"  {manager.build_authorize_url()}\n")
    if redirect_uri is None:
        print("Paste the full URL the browser was redirected to:")
        redirect_uri = sys.stdin.readline().strip()
    if not redirect_uri:
        print("No redirect URI given.", file=sys.stderr)
        return 2

    result = await manager.login(redirect_uri)
    stream = sys.stdout if result.stored else sys.stderr
    print(result.message, file=stream)
    if result.stored:
        username = await manager.get_username()
        if username:
            print(f"Logged in as {username}.")
    return 0 if result.stored else 1


async def _cmd_status(manager: AuthSessionManager) -> int:
    if not await manager.is_logged_in():
        print("Not logged in.")
        return 1
    username = await manager.get_username() or "<unknown user>"
    suffix = " (token expires within the hour)" if await manager.token_will_expire_soon() else ""
    print(f"Logged in as {username} (id {await manager.get_user_id()}){suffix}.")
    return 0


async def _run(args: argparse.Namespace) -> int:
    manager = _build_manager(args)
    try:
        if args.command == "login":
            return await _cmd_login(manager, args.redirect_uri)
        if args.command == "status":
            return await _cmd_status(manager)
        await manager.logout()
        print("Logged out.")
        return 0
    finally:
        await manager.aclose()


# --------------------------------------------------------------------------- #
# CLI
# --------------------------------------------------------------------------- #
def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Log in to AniList via OAuth 2.0.")
    parser.add_argument("--env-file", type=Path, default=DEFAULT_ENV_FILE)
    parser.add_argument("--env-prefix", default="ANILIST_OAUTH_")
    parser.add_argument("--storage-dir", default=None, help="session directory override")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)
    login = sub.add_parser("login", help="run the consent flow")
    login.add_argument("--redirect-uri", default=None, help="redirect URL from the browser")
    sub.add_parser("status", help="show the stored session")
    sub.add_parser("logout", help="forget the stored session")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)
    _load_env_file(args.env_file)
    try:
        return asyncio.run(_run(args))
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
