"""OAuth client settings for the session manager.

Environment variables (default prefix ``ANILIST_OAUTH_``)
---------------------------------------------------------
CLIENT_ID, CLIENT_SECRET, REDIRECT_URI
    Required client registration values.
AUTHORIZE_URL, TOKEN_URL, USER_INFO_URL
    Provider endpoints; default to the public AniList endpoints.
STORAGE_KEY
    Key the session is persisted under (default ``anilist``).
TIMEOUT
    HTTP timeout in seconds for token and identity calls (default 15).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from anilist_session.auth.models import AuthorizationRequest
from anilist_session.utils.environment import missing_oauth_vars, oauth_get, oauth_get_float

ANILIST_AUTHORIZE_URL: Final[str] = "https://anilist.co/api/v2/oauth/authorize"
ANILIST_TOKEN_URL: Final[str] = "https://anilist.co/api/v2/oauth/token"
ANILIST_USER_INFO_URL: Final[str] = "https://graphql.anilist.co"

DEFAULT_ENV_PREFIX: Final[str] = "ANILIST_OAUTH_"
DEFAULT_STORAGE_KEY: Final[str] = "anilist"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 15.0


@dataclass(frozen=True, slots=True)
class OAuthClientConfig:
    """Registration data and endpoints for one OAuth client."""

    client_id: str
    client_secret: str
    redirect_uri: str
    authorization_endpoint: str = ANILIST_AUTHORIZE_URL
    token_endpoint: str = ANILIST_TOKEN_URL
    user_info_endpoint: str = ANILIST_USER_INFO_URL
    storage_key: str = DEFAULT_STORAGE_KEY
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __repr__(self) -> str:  # keep the secret out of tracebacks and logs
        return (
            f"OAuthClientConfig(client_id={self.client_id!r}, "
            f"redirect_uri={self.redirect_uri!r}, storage_key={self.storage_key!r})"
        )

    @classmethod
    def from_env(cls, prefix: str = DEFAULT_ENV_PREFIX) -> OAuthClientConfig:
        """Load settings from ``${prefix}*`` environment variables.

        Raises
        ------
        ValueError
            If any required variable is missing.
        """
        missing = missing_oauth_vars(prefix)
        if missing:
            raise ValueError(f"OAuth environment not configured; missing {', '.join(missing)}")
        return cls(
            client_id=oauth_get(prefix, "CLIENT_ID") or "",
            client_secret=oauth_get(prefix, "CLIENT_SECRET") or "",
            redirect_uri=oauth_get(prefix, "REDIRECT_URI") or "",
            authorization_endpoint=oauth_get(prefix, "AUTHORIZE_URL", ANILIST_AUTHORIZE_URL) or "",
            token_endpoint=oauth_get(prefix, "TOKEN_URL", ANILIST_TOKEN_URL) or "",
            user_info_endpoint=oauth_get(prefix, "USER_INFO_URL", ANILIST_USER_INFO_URL) or "",
            storage_key=oauth_get(prefix, "STORAGE_KEY", DEFAULT_STORAGE_KEY) or "",
            timeout_seconds=oauth_get_float(prefix, "TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        )

    def authorization_request(self) -> AuthorizationRequest:
        return AuthorizationRequest(
            authorization_endpoint=self.authorization_endpoint,
            token_endpoint=self.token_endpoint,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
        )
