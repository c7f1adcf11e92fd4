"""Logging helpers shared by the auth core, the HTTP adapter and scripts."""

from __future__ import annotations

import logging
import sys

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Return *value* with everything but the first *keep_chars* replaced.

    ``None`` and empty strings render as ``"<none>"`` so log lines stay
    unambiguous.
    """
    if not value:
        return "<none>"
    if len(value) <= keep_chars:
        return "*" * len(value)
    return value[:keep_chars] + "*" * min(len(value) - keep_chars, 8)


def configure_logging(level: int | str = logging.INFO, *, stream=None) -> logging.Logger:  # noqa: ANN001
    """Attach a console handler to the ``anilist-session`` logger tree.

    Calling it repeatedly only adjusts the level; no duplicate handlers are added.
    """
    root = logging.getLogger("anilist-session")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root.setLevel(level)
    if not any(getattr(h, "_anilist_session", False) for h in root.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
        handler._anilist_session = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    return root
