"""Utility functions for reading OAuth settings from the environment."""

import logging
import os
from typing import Final, Tuple

logger = logging.getLogger("anilist-session.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")

_REQUIRED_KEYS: Final[Tuple[str, ...]] = ("CLIENT_ID", "CLIENT_SECRET", "REDIRECT_URI")


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def oauth_get(prefix: str, key: str, default: str | None = None) -> str | None:
    """
    Return ``${prefix}${key}`` stripped of surrounding whitespace.

    Empty values are treated as unset so that placeholder lines in ``.env``
    files do not shadow defaults.
    """
    raw = os.getenv(f"{prefix}{key}")
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def oauth_get_float(prefix: str, key: str, default: float) -> float:
    """Return ``${prefix}${key}`` as float, falling back to *default* when invalid."""
    raw = oauth_get(prefix, key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s%s=%r", prefix, key, raw)
        return default


def missing_oauth_vars(prefix: str) -> list[str]:
    """Return the fully-qualified names of required variables that are unset."""
    return [f"{prefix}{key}" for key in _REQUIRED_KEYS if oauth_get(prefix, key) is None]


def is_oauth_configured(prefix: str) -> bool:
    """
    Return True if the client credentials for *prefix* are complete.

    ``${prefix}ENABLE`` set to a falsy value disables OAuth even when all
    credentials are present.
    """
    enable_raw = os.getenv(f"{prefix}ENABLE")
    if enable_raw is not None and not _truthy(enable_raw):
        logger.info("OAuth disabled via %sENABLE", prefix)
        return False

    missing = missing_oauth_vars(prefix)
    if missing:
        logger.info("OAuth is not configured; missing %s", ", ".join(missing))
        return False
    return True
