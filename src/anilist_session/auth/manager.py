"""AuthSessionManager – the façade business code talks to.

The manager orchestrates the Authorization Code grant end to end:

* builds the consent request the UI layer opens;
* turns the redirect it receives back into stored tokens
  (:meth:`AuthSessionManager.handle_redirect`);
* answers "am I logged in" against an injected clock;
* refreshes proactively when the token is inside the expiry horizon, through a
  single-flight :class:`~anilist_session.auth.refresh.RefreshCoordinator`;
* logs out.

Construct exactly one manager per process and pass it to its consumers; the
persisted state is scoped by the store's storage key, not by module globals.

Failures of the token and identity endpoints are typed
:class:`~anilist_session.auth.errors.AuthFailure` values.  None of them ever
replaces a previously good persisted session.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Final

from anilist_session.auth.clock import Clock, default_clock
from anilist_session.auth.config import OAuthClientConfig
from anilist_session.auth.errors import AuthFailure, FailureKind, NeedsReauthError, StorageError
from anilist_session.auth.log_utils import get_auth_logger
from anilist_session.auth.models import (
    AuthorizationRequest,
    AuthSession,
    LoginResult,
)
from anilist_session.auth.redirect import RedirectParser
from anilist_session.auth.refresh import RefreshCoordinator, RefreshOutcome
from anilist_session.auth.store import CredentialStore
from anilist_session.auth.token_client import TokenExchangeClient
from anilist_session.auth.user_info import UserInfoClient

EXPIRY_HORIZON_SECONDS: Final[float] = 3600.0

RefreshFailureListener = Callable[[AuthFailure], None]


class AuthSessionManager:
    """Obtains, persists, refreshes and invalidates OAuth credentials."""

    def __init__(
        self,
        config: OAuthClientConfig,
        *,
        store: CredentialStore,
        token_client: TokenExchangeClient | None = None,
        user_info: UserInfoClient | None = None,
        redirect_parser: RedirectParser | None = None,
        clock: Clock = default_clock,
        expiry_horizon_seconds: float = EXPIRY_HORIZON_SECONDS,
        on_refresh_failure: RefreshFailureListener | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.clock = clock
        self.expiry_horizon_seconds = expiry_horizon_seconds
        self.token_client = token_client or TokenExchangeClient(timeout=config.timeout_seconds)
        self.user_info = user_info or UserInfoClient(timeout=config.timeout_seconds)
        self.redirect_parser = redirect_parser or RedirectParser(config.redirect_uri)
        self.refresh_coordinator = RefreshCoordinator(self._refresh_session)
        self.on_refresh_failure = on_refresh_failure
        self.last_refresh_failure: AuthFailure | None = None
        self.last_login: LoginResult | None = None
        # bumped by login/logout so a refresh started earlier never overwrites them
        self._generation = 0
        # held around every generation check and the store write that follows it
        self._write_lock = asyncio.Lock()
        self._log = get_auth_logger(
            base_logger_name="anilist-session.auth.manager",
            storage_key=config.storage_key,
        )

    # ------------------------------------------------------------------ #
    # Session state                                                      #
    # ------------------------------------------------------------------ #
    async def is_logged_in(self) -> bool:
        """Return True iff a stored access token exists and ``expires_at > now``.

        An expired token with a stored refresh token starts a background
        refresh; this call still answers ``False``.
        """
        session = await self._load()
        return await self._check_logged_in(session)

    async def token_will_expire_soon(self) -> bool:
        """Return True iff the stored token expires within the refresh horizon."""
        return self._expires_soon(await self._load())

    async def get_access_token(self) -> str | None:
        """Return a usable access token, refreshing first when it expires soon.

        A failed refresh is not reported to the caller: the old token, still
        valid at this point, is returned instead.
        """
        session = await self._load()
        if not await self._check_logged_in(session):
            self._log.debug("get_access_token: not logged in")
            return None

        if self._expires_soon(session) and session.refresh_token:
            self._log.debug("Token expires soon; refreshing before use")
            outcome = await self.refresh_coordinator.refresh_if_needed(session)
            if isinstance(outcome, AuthSession) and outcome.access_token:
                return outcome.access_token
            self._log.info("Refresh failed; continuing with the current token")

        return session.access_token

    async def require_access_token(self) -> str:
        """Like :meth:`get_access_token` but raise when re-authentication is needed."""
        token = await self.get_access_token()
        if token is None:
            reason = self.last_refresh_failure.kind if self.last_refresh_failure else None
            raise NeedsReauthError(
                storage_key=self.config.storage_key,
                reason=reason,
                message="No valid access token; log in again.",
            )
        return token

    async def get_user_id(self) -> int | None:
        return (await self._load()).user_id

    async def get_username(self) -> str | None:
        return (await self._load()).username

    # ------------------------------------------------------------------ #
    # Login                                                              #
    # ------------------------------------------------------------------ #
    def build_authorization_request(self) -> AuthorizationRequest:
        """Return the consent request for a new login attempt (no side effects)."""
        return self.config.authorization_request()

    def build_authorize_url(self) -> str:
        return self.build_authorization_request().to_url()

    async def handle_redirect(self, uri: str) -> bool:
        """Complete a login from the redirect *uri*; True only if tokens were stored."""
        return (await self.login(uri)).stored

    async def login(self, uri: str) -> LoginResult:
        """Complete a login from the redirect *uri* and return the full outcome."""
        result = await self._login(uri)
        self.last_login = result
        if result.failure is not None:
            self._log.warning(
                "Login failed (%s): %s", result.failure.kind.value, result.failure.detail
            )
        return result

    async def _login(self, uri: str) -> LoginResult:
        parsed = self.redirect_parser.parse(uri)
        if isinstance(parsed, AuthFailure):
            return LoginResult(stored=False, failure=parsed)

        exchanged = await self.token_client.exchange_code(
            self.config.token_endpoint,
            self.config.client_id,
            self.config.client_secret,
            self.config.redirect_uri,
            parsed,
        )
        if isinstance(exchanged, AuthFailure):
            return LoginResult(stored=False, failure=exchanged)

        session = AuthSession(
            access_token=exchanged.access_token,
            refresh_token=exchanged.refresh_token,
            expires_at=self.clock() + exchanged.expires_in_seconds,
        )
        async with self._write_lock:
            try:
                await self.store.save(session)
            except StorageError as exc:
                failure = AuthFailure(FailureKind.STORAGE_ERROR, str(exc))
                return LoginResult(stored=False, failure=failure)
            self._generation += 1
            generation = self._generation
        self._log.info("Stored new session (expires in %ss)", exchanged.expires_in_seconds)

        profile = await self.user_info.fetch_profile(
            self.config.user_info_endpoint, exchanged.access_token
        )
        if isinstance(profile, AuthFailure):
            self._log.warning("Profile enrichment failed: %s", profile.message)
            return LoginResult(stored=True, profile_failure=profile)

        async with self._write_lock:
            if generation != self._generation:
                # logged out (or logged in again) while the profile was fetched
                return LoginResult(stored=True)
            latest = await self._load()
            if latest.access_token is None:
                return LoginResult(stored=True)
            if latest.access_token != session.access_token:
                # a refresh already replaced the tokens; enrich what is stored now
                session = latest
            try:
                await self.store.save(session.with_profile(profile))
            except StorageError as exc:
                failure = AuthFailure(FailureKind.STORAGE_ERROR, str(exc))
                self._log.warning("Could not store profile: %s", exc)
                return LoginResult(stored=True, profile_failure=failure)
        self._log.info("Logged in as user_id=%s", profile.id)
        return LoginResult(stored=True)

    # ------------------------------------------------------------------ #
    # Logout & shutdown                                                  #
    # ------------------------------------------------------------------ #
    async def logout(self) -> None:
        """Forget the stored session; no network call is made."""
        async with self._write_lock:
            self._generation += 1
            await self.store.clear()
        self._log.info("Logged out")

    async def aclose(self) -> None:
        """Wait for an in-flight refresh and release HTTP clients."""
        await self.refresh_coordinator.wait_idle()
        await self.token_client.aclose()
        await self.user_info.aclose()

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #
    async def _load(self) -> AuthSession:
        try:
            return await self.store.load()
        except StorageError as exc:
            self._log.error("Cannot read stored session, treating as logged out: %s", exc)
            return AuthSession.empty()

    async def _check_logged_in(self, session: AuthSession) -> bool:
        if session.access_token is None:
            return False
        if session.expires_at > self.clock():
            return True
        if session.refresh_token:
            self._log.debug("Token expired; starting background refresh")
            await self.refresh_coordinator.spawn(session)
        return False

    def _expires_soon(self, session: AuthSession) -> bool:
        if session.access_token is None:
            return False
        return session.expires_at < self.clock() + self.expiry_horizon_seconds

    def _report_refresh_failure(self, failure: AuthFailure) -> AuthFailure:
        self.last_refresh_failure = failure
        self._log.warning("Token refresh failed (%s): %s", failure.kind.value, failure.detail)
        if self.on_refresh_failure is not None:
            try:
                self.on_refresh_failure(failure)
            except Exception:  # listener bugs must not break token access
                self._log.exception("on_refresh_failure listener raised")
        return failure

    async def _refresh_session(self, snapshot: AuthSession) -> RefreshOutcome:
        """Refresh procedure executed inside the coordinator's single attempt."""
        generation = self._generation
        try:
            latest = await self.store.load()
        except StorageError as exc:
            return self._report_refresh_failure(AuthFailure(FailureKind.STORAGE_ERROR, str(exc)))

        if latest.access_token and latest.access_token != snapshot.access_token:
            self._log.debug("Session already refreshed elsewhere")
            return latest
        if not latest.refresh_token:
            return self._report_refresh_failure(
                AuthFailure(FailureKind.MISSING_REFRESH_TOKEN, "session has no refresh token")
            )

        result = await self.token_client.refresh(
            self.config.token_endpoint,
            self.config.client_id,
            self.config.client_secret,
            latest.refresh_token,
        )
        if isinstance(result, AuthFailure):
            return self._report_refresh_failure(result)

        refreshed = latest.with_tokens(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_at=self.clock() + result.expires_in_seconds,
        )
        async with self._write_lock:
            if generation != self._generation:
                failure = AuthFailure(FailureKind.MISSING_REFRESH_TOKEN, "session changed during refresh")
            else:
                failure = None
                try:
                    await self.store.save(refreshed)
                except StorageError as exc:
                    failure = AuthFailure(FailureKind.STORAGE_ERROR, str(exc))
        if failure is not None:
            return self._report_refresh_failure(failure)

        self.last_refresh_failure = None
        self._log.info("Refreshed access token (expires in %ss)", result.expires_in_seconds)
        return refreshed


__all__ = ["AuthSessionManager", "EXPIRY_HORIZON_SECONDS", "RefreshFailureListener"]
