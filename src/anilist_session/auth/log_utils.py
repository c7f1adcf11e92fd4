"""Context-carrying loggers for the auth core and its HTTP adapter.

Log records produced through :func:`get_auth_logger` carry at most two extra
attributes, both safe to ship to a log aggregator:

- ``storage_key``    – key the session is persisted under (e.g. ``anilist``)
- ``correlation_id`` – request identifier assigned by the HTTP adapter

Anything else passed as context is dropped, so a token handed over by mistake
never reaches a handler.  Values are stringified and cut to 64 characters.

Usage
-----
>>> from anilist_session.auth.log_utils import get_auth_logger
>>> log = get_auth_logger(base_logger_name="anilist-session.auth.manager", storage_key="anilist")
>>> log.bind(correlation_id="3f2a").info("Stored new session")
"""

from __future__ import annotations

import logging
from typing import Any, Final, Mapping, MutableMapping

CONTEXT_KEYS: Final[tuple[str, ...]] = ("storage_key", "correlation_id")
_MAX_VALUE_LEN: Final[int] = 64


def _clean_context(context: Mapping[str, Any] | None) -> dict[str, str]:
    if not context:
        return {}
    return {
        key: str(context[key])[:_MAX_VALUE_LEN]
        for key in CONTEXT_KEYS
        if context.get(key) is not None
    }


class AuthLogger(logging.LoggerAdapter):
    """LoggerAdapter restricted to :data:`CONTEXT_KEYS`."""

    def __init__(self, logger: logging.Logger, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(logger, _clean_context(context))

    def bind(self, **context: Any) -> AuthLogger:
        """Return a sibling adapter with *context* layered over the current one."""
        merged = {**self.extra, **{k: v for k, v in context.items() if v is not None}}
        return AuthLogger(self.logger, merged)

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        extra = kwargs.get("extra") or {}
        # values given at the call site take precedence
        kwargs["extra"] = {**self.extra, **extra}
        return msg, kwargs


def get_auth_logger(
    *,
    base_logger_name: str = "anilist-session.auth",
    storage_key: str | None = None,
    correlation_id: str | None = None,
) -> AuthLogger:
    return AuthLogger(
        logging.getLogger(base_logger_name),
        {"storage_key": storage_key, "correlation_id": correlation_id},
    )
