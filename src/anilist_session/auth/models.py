"""Typed, immutable records used by the session manager."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Final, Union
from urllib.parse import urlencode

from anilist_session.auth.errors import AuthFailure

RESPONSE_TYPE_CODE: Final[str] = "code"


@dataclass(frozen=True, slots=True)
class AuthSession:
    """Persisted credentials for one storage key.

    ``expires_at`` is an absolute UNIX timestamp and is only meaningful while
    ``access_token`` is set; the empty session carries ``0.0``.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: float = 0.0
    user_id: int | None = None
    username: str | None = None

    @classmethod
    def empty(cls) -> AuthSession:
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.access_token is None

    def with_tokens(
        self, *, access_token: str, refresh_token: str | None, expires_at: float
    ) -> AuthSession:
        """Return a copy carrying new tokens.

        A ``None`` *refresh_token* keeps the current one; providers do not have
        to rotate it on every refresh.
        """
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token or self.refresh_token,
            expires_at=float(expires_at),
        )

    def with_profile(self, profile: UserProfile) -> AuthSession:
        return replace(self, user_id=profile.id, username=profile.name)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> AuthSession:
        """Build a session from persisted data.

        Raises
        ------
        ValueError
            If *data* is not a complete, well-typed record.  Callers treat this
            as a corrupted store and fall back to the empty session.
        """
        if not isinstance(data, dict):
            raise ValueError("session record must be an object")
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"unexpected fields: {sorted(unknown)}")

        access_token = _opt_str(data, "access_token")
        refresh_token = _opt_str(data, "refresh_token")
        username = _opt_str(data, "username")
        user_id = data.get("user_id")
        if user_id is not None and (isinstance(user_id, bool) or not isinstance(user_id, int)):
            raise ValueError("user_id must be an integer")
        expires_at = data.get("expires_at", 0.0)
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise ValueError("expires_at must be numeric")

        if access_token is None:
            if refresh_token or user_id is not None or username or expires_at:
                raise ValueError("partial session without access_token")
            return cls.empty()
        if expires_at <= 0:
            raise ValueError("access_token without expiry")
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=float(expires_at),
            user_id=user_id,
            username=username,
        )


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value or None


@dataclass(frozen=True, slots=True)
class AuthorizationRequest:
    """Parameters of one browser-based login attempt (never persisted)."""

    authorization_endpoint: str
    token_endpoint: str
    client_id: str
    redirect_uri: str
    response_type: str = RESPONSE_TYPE_CODE

    def to_url(self) -> str:
        """Return the provider consent URL the UI layer should open."""
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": self.response_type,
            }
        )
        sep = "&" if "?" in self.authorization_endpoint else "?"
        return f"{self.authorization_endpoint}{sep}{query}"


@dataclass(frozen=True, slots=True)
class TokenExchangeSuccess:
    """Tokens returned by the provider's token endpoint."""

    access_token: str
    expires_in_seconds: int
    refresh_token: str | None = None


TokenExchangeResult = Union[TokenExchangeSuccess, AuthFailure]


@dataclass(frozen=True, slots=True)
class UserProfile:
    """Identity of the logged-in user as reported by the provider."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Outcome of handling one redirect."""

    stored: bool
    failure: AuthFailure | None = None
    profile_failure: AuthFailure | None = None

    @property
    def message(self) -> str:
        if self.failure is not None:
            return self.failure.message
        if self.profile_failure is not None:
            return f"Logged in, but the user profile is unavailable ({self.profile_failure.message})"
        return "Logged in."
