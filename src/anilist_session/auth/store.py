"""Credential persistence for the session manager.

This module introduces a *narrow* persistence interface
(:class:`CredentialStore`) and two implementations:
:class:`DiskCredentialStore` (JSON file) and :class:`MemoryCredentialStore`.
The design follows these goals:

* **Atomicity** – each write goes to its own temp file and is moved into place
  with *os.replace*, so neither a reader nor a concurrent writer sees
  a half-written record.
* **Fail closed** – a corrupted or partial record loads as the empty
  (logged-out) session.
* **Non-blocking** – file I/O runs in a worker thread so the event loop keeps
  serving other tasks.
* **Filename safety** – storage keys are slugified before hitting the
  filesystem.

Environment variables
---------------------
ANILIST_SESSION_STORAGE_DIR
    Base directory for all persisted data.
    Defaults to ``~/.anilist-session`` when unset.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from anyio import to_thread

from anilist_session.auth.errors import StorageError
from anilist_session.auth.models import AuthSession

_LOG = logging.getLogger("anilist-session.auth.store")

STORAGE_DIR_ENV = "ANILIST_SESSION_STORAGE_DIR"

# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #


def _slug(text: str, max_len: int = 80) -> str:
    """Filesystem-safe slug."""
    text = (text or "").strip().lower()
    text = re.sub(r"[^a-z0-9._-]+", "-", text)
    text = re.sub(r"-{2,}", "-", text).strip("-.")
    return text[:max_len] or "default"


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # one temp file per write so concurrent saves never share an inode
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, separators=(",", ":"), sort_keys=True)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)  # atomic on POSIX
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class CredentialStore(Protocol):
    """Minimal persistence contract for one :class:`AuthSession`."""

    async def load(self) -> AuthSession: ...

    async def save(self, session: AuthSession) -> None: ...

    async def clear(self) -> None: ...


# --------------------------------------------------------------------------- #
# Disk implementation                                                         #
# --------------------------------------------------------------------------- #


class DiskCredentialStore(CredentialStore):
    """JSON-file implementation of :class:`CredentialStore`."""

    def __init__(
        self,
        base_dir: str | os.PathLike | None = None,
        *,
        storage_key: str = "anilist",
    ) -> None:
        self.base_dir = Path(
            base_dir or os.getenv(STORAGE_DIR_ENV) or Path.home() / ".anilist-session"
        ).expanduser()
        self.storage_key = storage_key

    @property
    def path(self) -> Path:
        return self.base_dir / "sessions" / f"{_slug(self.storage_key)}.json"

    # ---------------- sync primitives (run in worker thread) ------------- #
    def _read(self) -> AuthSession:
        path = self.path
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return AuthSession.empty()
        except OSError as exc:
            raise StorageError(f"cannot read {path.name}: {exc.strerror or exc}") from exc

        try:
            return AuthSession.from_dict(json.loads(raw.decode("utf-8")))
        except ValueError as exc:  # JSONDecodeError and UnicodeDecodeError included
            _LOG.warning(
                "Discarding unreadable session record key=%s: %s", self.storage_key, exc
            )
            return AuthSession.empty()

    def _write(self, session: AuthSession) -> None:
        try:
            _atomic_write(self.path, session.to_dict())
        except OSError as exc:
            raise StorageError(f"cannot write {self.path.name}: {exc.strerror or exc}") from exc

    def _delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"cannot delete {self.path.name}: {exc.strerror or exc}") from exc

    # ---------------- async contract ------------------------------------- #
    async def load(self) -> AuthSession:
        return await to_thread.run_sync(self._read)

    async def save(self, session: AuthSession) -> None:
        await to_thread.run_sync(self._write, session)
        _LOG.debug("Saved session key=%s", self.storage_key)

    async def clear(self) -> None:
        await to_thread.run_sync(self._delete)
        _LOG.debug("Cleared session key=%s", self.storage_key)


# --------------------------------------------------------------------------- #
# In-memory implementation                                                    #
# --------------------------------------------------------------------------- #


class MemoryCredentialStore(CredentialStore):
    """Process-local store; the record is replaced as a whole on every save."""

    def __init__(self, session: AuthSession | None = None) -> None:
        self._session = session or AuthSession.empty()
        self.saves = 0

    async def load(self) -> AuthSession:
        return self._session

    async def save(self, session: AuthSession) -> None:
        self._session = session
        self.saves += 1

    async def clear(self) -> None:
        self._session = AuthSession.empty()
