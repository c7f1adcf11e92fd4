"""OAuth 2.0 session core.

This namespace hosts the **HTTP-framework-agnostic** building blocks of the
Authorization Code grant used by the AniList client.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
models
    Immutable dataclasses for the persisted session and exchange results.
errors
    Failure taxonomy and exception types.
store
    Credential persistence (disk and in-memory).
token_client
    Token endpoint calls (code exchange, refresh).
redirect
    Two-tier authorization code extraction from redirect URIs.
refresh
    Single-flight refresh coordination.
user_info
    Identity lookup after login.
manager
    :class:`AuthSessionManager`, the façade business code calls.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, FrozenClock, default_clock  # noqa: F401
from .config import OAuthClientConfig  # noqa: F401
from .errors import AuthFailure, FailureKind, NeedsReauthError, StorageError  # noqa: F401
from .log_utils import AuthLogger, get_auth_logger  # noqa: F401
from .manager import AuthSessionManager  # noqa: F401
from .models import (  # noqa: F401
    AuthorizationRequest,
    AuthSession,
    LoginResult,
    TokenExchangeResult,
    TokenExchangeSuccess,
    UserProfile,
)
from .redirect import RedirectParser  # noqa: F401
from .refresh import RefreshCoordinator  # noqa: F401
from .store import CredentialStore, DiskCredentialStore, MemoryCredentialStore  # noqa: F401
from .token_client import TokenExchangeClient  # noqa: F401
from .user_info import UserInfoClient  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "FrozenClock",
    "default_clock",
    # config
    "OAuthClientConfig",
    # errors
    "AuthFailure",
    "FailureKind",
    "NeedsReauthError",
    "StorageError",
    # models
    "AuthorizationRequest",
    "AuthSession",
    "LoginResult",
    "TokenExchangeResult",
    "TokenExchangeSuccess",
    "UserProfile",
    # components
    "CredentialStore",
    "DiskCredentialStore",
    "MemoryCredentialStore",
    "TokenExchangeClient",
    "RedirectParser",
    "RefreshCoordinator",
    "UserInfoClient",
    "AuthSessionManager",
    # logging helpers
    "AuthLogger",
    "get_auth_logger",
]
