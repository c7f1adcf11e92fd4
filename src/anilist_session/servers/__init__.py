"""Starlette adapter hosting the OAuth redirect target."""

from .main import create_app  # noqa: F401

__all__ = ["create_app"]
