"""Failure taxonomy and exception types of the session manager.

Token exchange, refresh and redirect parsing report failures as
:class:`AuthFailure` *values*; only storage faults and the explicit
``require_access_token`` helper raise.  Everything here is data-carrying so
that web/CLI layers can turn it into HTTP responses or user-facing messages.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class FailureKind(str, enum.Enum):
    """Why an auth operation did not produce credentials."""

    NETWORK_ERROR = "network_error"
    PROVIDER_ERROR = "provider_error"
    MALFORMED_RESPONSE = "malformed_response"
    AUTHORIZATION_DENIED = "authorization_denied"
    MISSING_AUTHORIZATION_CODE = "missing_authorization_code"
    MISSING_REFRESH_TOKEN = "missing_refresh_token"
    STORAGE_ERROR = "storage_error"

    @property
    def retryable(self) -> bool:
        return self is FailureKind.NETWORK_ERROR


_MESSAGES: dict[FailureKind, str] = {
    FailureKind.NETWORK_ERROR: "Could not reach the authorization server",
    FailureKind.PROVIDER_ERROR: "The authorization server rejected the request",
    FailureKind.MALFORMED_RESPONSE: "The authorization server sent an unexpected response",
    FailureKind.AUTHORIZATION_DENIED: "Access was denied on the consent page",
    FailureKind.MISSING_AUTHORIZATION_CODE: "The redirect did not contain an authorization code",
    FailureKind.MISSING_REFRESH_TOKEN: "No refresh token is stored for this session",
    FailureKind.STORAGE_ERROR: "Credentials could not be saved",
}


@dataclass(frozen=True, slots=True)
class AuthFailure:
    """A typed failure result; never raised."""

    kind: FailureKind
    detail: str = ""

    @property
    def message(self) -> str:
        """Single human-readable sentence suitable for end users."""
        base = _MESSAGES[self.kind]
        return f"{base}: {self.detail}" if self.detail else f"{base}."


class StorageError(RuntimeError):
    """Raised by credential stores when persisted state cannot be read or written."""


class NeedsReauthError(RuntimeError):
    """Raised when no usable access token exists and a new OAuth flow is required."""

    def __init__(
        self,
        *,
        storage_key: str,
        reason: FailureKind | None = None,
        message: str | None = None,
    ) -> None:
        super().__init__(message or "Re-authentication required.")
        self.storage_key: str = storage_key
        self.reason: FailureKind | None = reason

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload **without secrets**."""
        payload = {
            "error": "needs_reauth",
            "storage_key": self.storage_key,
            "message": str(self),
        }
        if self.reason is not None:
            payload["reason"] = self.reason.value
        return payload
