"""OAuth 2.0 session management for the AniList API."""

from __future__ import annotations

__version__ = "0.3.0"
