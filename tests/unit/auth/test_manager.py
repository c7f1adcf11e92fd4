"""Unit tests for AuthSessionManager.

Coverage:
* Logged-in checks against the injected clock (exclusive expiry boundary)
* Login from a redirect: happy path, lenient fallback, denial, failures
* Proactive refresh: exactly one network call for N concurrent callers
* Refresh failures keep the old token and are reported to a listener
* Logout is idempotent and is not undone by an in-flight refresh
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from anilist_session.auth.errors import AuthFailure, FailureKind, NeedsReauthError, StorageError
from anilist_session.auth.manager import AuthSessionManager
from anilist_session.auth.models import AuthSession
from anilist_session.auth.store import MemoryCredentialStore
from anilist_session.auth.token_client import TokenExchangeClient
from anilist_session.auth.user_info import UserInfoClient


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #
def _session(now: float, *, offset: float, access: str = "old", refresh: str | None = "ref0") -> AuthSession:
    return AuthSession(
        access_token=access,
        refresh_token=refresh,
        expires_at=now + offset,
        user_id=7,
        username="faye",
    )


class _FailingSaveStore(MemoryCredentialStore):
    async def save(self, session: AuthSession) -> None:
        raise StorageError("disk full")


class _ParkingStore(MemoryCredentialStore):
    """Memory store whose next load or save waits until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.park_load = False
        self.park_save = False
        self.parked = asyncio.Event()
        self.release = asyncio.Event()

    async def _park(self) -> None:
        self.parked.set()
        await self.release.wait()

    async def load(self) -> AuthSession:
        if self.park_load:
            self.park_load = False
            await self._park()
        return await super().load()

    async def save(self, session: AuthSession) -> None:
        if self.park_save:
            self.park_save = False
            await self._park()
        await super().save(session)


def _manager_over(store, config, http_client, clock) -> AuthSessionManager:
    return AuthSessionManager(
        config,
        store=store,
        token_client=TokenExchangeClient(http_client),
        user_info=UserInfoClient(http_client),
        clock=clock,
    )


# --------------------------------------------------------------------------- #
# Logged-in state                                                             #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_empty_store_is_logged_out(manager: AuthSessionManager, provider) -> None:
    assert await manager.is_logged_in() is False
    assert await manager.get_access_token() is None
    assert await manager.token_will_expire_soon() is False
    assert provider.token_requests == []


@pytest.mark.anyio
async def test_expiry_boundary_is_exclusive(manager, store, clock) -> None:
    await store.save(_session(clock(), offset=0, refresh=None))
    assert await manager.is_logged_in() is False

    clock.advance(-1)
    assert await manager.is_logged_in() is True


@pytest.mark.anyio
async def test_expire_soon_horizon(manager, store, clock) -> None:
    await store.save(_session(clock(), offset=3600))
    assert await manager.token_will_expire_soon() is False

    await store.save(_session(clock(), offset=3599))
    assert await manager.token_will_expire_soon() is True


@pytest.mark.anyio
async def test_expired_token_without_refresh_token_starts_nothing(manager, store, clock) -> None:
    await store.save(_session(clock(), offset=-5, refresh=None))

    assert await manager.is_logged_in() is False
    assert manager.refresh_coordinator.attempts == 0


@pytest.mark.anyio
async def test_expired_token_triggers_background_refresh(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=-5))

    assert await manager.is_logged_in() is False
    await manager.refresh_coordinator.wait_idle()

    assert len(provider.grants("refresh_token")) == 1
    assert provider.grants("refresh_token")[0]["refresh_token"] == "ref0"
    assert await manager.is_logged_in() is True
    assert await manager.get_access_token() == "tok1"


# --------------------------------------------------------------------------- #
# Login                                                                       #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_handle_redirect_stores_session_and_profile(manager, store, clock, provider, config) -> None:
    assert await manager.handle_redirect(f"{config.redirect_uri}?code=ABC123") is True

    stored = await store.load()
    assert stored == AuthSession(
        access_token="tok1",
        refresh_token="ref1",
        expires_at=clock() + 3600,
        user_id=42,
        username="spike",
    )
    assert await manager.is_logged_in() is True
    assert await manager.get_user_id() == 42
    assert await manager.get_username() == "spike"

    (exchange,) = provider.grants("authorization_code")
    assert exchange == {
        "grant_type": "authorization_code",
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "redirect_uri": config.redirect_uri,
        "code": "ABC123",
    }
    assert provider.user_info_requests[0].headers["Authorization"] == "Bearer tok1"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "uri",
    [
        "anilist-session://callback?code=XYZ&broken",
        "https://elsewhere.example/redirect?code=XYZ",
    ],
)
async def test_lenient_fallback_login(manager, store, clock, provider, uri) -> None:
    assert await manager.handle_redirect(uri) is True

    assert provider.grants("authorization_code")[0]["code"] == "XYZ"
    assert (await store.load()).expires_at == clock() + 3600


@pytest.mark.anyio
async def test_access_denied_leaves_store_untouched(manager, store, provider, config) -> None:
    uri = f"{config.redirect_uri}?error=access_denied&error_description=User+declined"

    assert await manager.handle_redirect(uri) is False
    assert manager.last_login.failure == AuthFailure(FailureKind.AUTHORIZATION_DENIED, "User declined")
    assert "denied" in manager.last_login.message
    assert store.saves == 0
    assert provider.token_requests == []


@pytest.mark.anyio
async def test_redirect_without_code(manager, store, config) -> None:
    result = await manager.login(f"{config.redirect_uri}?state=abc")

    assert result.stored is False
    assert result.failure.kind is FailureKind.MISSING_AUTHORIZATION_CODE
    assert store.saves == 0


@pytest.mark.anyio
async def test_failed_exchange_keeps_previous_session(manager, store, clock, provider, config) -> None:
    previous = _session(clock(), offset=7200)
    await store.save(previous)
    provider.token_queue.append(
        httpx.Response(400, json={"error": "invalid_grant", "message": "Invalid authorization code"})
    )

    result = await manager.login(f"{config.redirect_uri}?code=stale")

    assert result.stored is False
    assert result.failure == AuthFailure(FailureKind.PROVIDER_ERROR, "HTTP 400: Invalid authorization code")
    assert await store.load() == previous


@pytest.mark.anyio
async def test_profile_failure_keeps_tokens(manager, store, provider, config) -> None:
    provider.user_info_response = httpx.Response(500, text="upstream down")

    result = await manager.login(f"{config.redirect_uri}?code=ABC123")

    assert result.stored is True
    assert result.failure is None
    assert result.profile_failure.kind is FailureKind.PROVIDER_ERROR
    assert result.message.startswith("Logged in, but the user profile is unavailable")
    assert await manager.is_logged_in() is True
    assert await manager.get_user_id() is None
    assert (await store.load()).access_token == "tok1"


@pytest.mark.anyio
async def test_storage_failure_reports_not_stored(config, http_client, clock, provider) -> None:
    manager = AuthSessionManager(
        config,
        store=_FailingSaveStore(),
        token_client=TokenExchangeClient(http_client),
        user_info=UserInfoClient(http_client),
        clock=clock,
    )

    result = await manager.login(f"{config.redirect_uri}?code=ABC123")

    assert result.stored is False
    assert result.failure == AuthFailure(FailureKind.STORAGE_ERROR, "disk full")
    assert provider.user_info_requests == []


def test_build_authorization_request(manager, config) -> None:
    request = manager.build_authorization_request()

    assert request.response_type == "code"
    assert request.client_id == config.client_id
    assert request.token_endpoint == config.token_endpoint
    assert manager.build_authorize_url() == request.to_url()


# --------------------------------------------------------------------------- #
# Refresh                                                                     #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_expiring_token_refreshes_once_before_returning(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=1800))

    assert await manager.get_access_token() == "tok1"

    assert len(provider.grants("refresh_token")) == 1
    stored = await store.load()
    assert stored.expires_at == clock() + 3600
    assert (stored.user_id, stored.username) == (7, "faye")


@pytest.mark.anyio
async def test_fresh_token_is_returned_without_refresh(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=7200))

    assert await manager.get_access_token() == "old"
    assert provider.token_requests == []


@pytest.mark.anyio
async def test_concurrent_callers_share_one_refresh(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=600))
    provider.hold = asyncio.Event()

    tasks = [asyncio.create_task(manager.get_access_token()) for _ in range(10)]
    await provider.entered.wait()
    provider.hold.set()
    tokens = await asyncio.gather(*tasks)

    assert tokens == ["tok1"] * 10
    assert len(provider.grants("refresh_token")) == 1
    assert manager.refresh_coordinator.attempts == 1
    assert not manager.refresh_coordinator.in_flight


@pytest.mark.anyio
async def test_stale_snapshot_after_refresh_makes_no_second_call(manager, store, clock, provider) -> None:
    stale = _session(clock(), offset=600)
    await store.save(stale)
    assert await manager.get_access_token() == "tok1"

    outcome = await manager.refresh_coordinator.refresh_if_needed(stale)

    assert isinstance(outcome, AuthSession)
    assert outcome.access_token == "tok1"
    assert len(provider.grants("refresh_token")) == 1


@pytest.mark.anyio
async def test_refresh_keeps_refresh_token_when_not_rotated(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=60))
    provider.token_queue.append({"access_token": "tok2", "expires_in": 3600})

    assert await manager.get_access_token() == "tok2"
    assert (await store.load()).refresh_token == "ref0"


@pytest.mark.anyio
async def test_refresh_stores_rotated_refresh_token(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=60))

    await manager.get_access_token()
    assert (await store.load()).refresh_token == "ref1"


@pytest.mark.anyio
async def test_refresh_failure_returns_old_token_and_notifies(config, store, http_client, clock, provider) -> None:
    seen: list[AuthFailure] = []
    manager = AuthSessionManager(
        config,
        store=store,
        token_client=TokenExchangeClient(http_client),
        user_info=UserInfoClient(http_client),
        clock=clock,
        on_refresh_failure=seen.append,
    )
    previous = _session(clock(), offset=120)
    await store.save(previous)
    provider.token_queue.append(httpx.Response(400, json={"error": "invalid_grant"}))

    assert await manager.get_access_token() == "old"

    assert await store.load() == previous
    assert [f.kind for f in seen] == [FailureKind.PROVIDER_ERROR]
    assert manager.last_refresh_failure == seen[0]


@pytest.mark.anyio
async def test_network_failure_during_refresh(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=120))
    provider.token_queue.append(httpx.ConnectError("connection refused"))

    assert await manager.get_access_token() == "old"
    assert manager.last_refresh_failure.kind is FailureKind.NETWORK_ERROR
    assert manager.last_refresh_failure.kind.retryable

    # the next call retries and clears the diagnostic
    assert await manager.get_access_token() == "tok1"
    assert manager.last_refresh_failure is None


@pytest.mark.anyio
async def test_listener_errors_do_not_reach_callers(config, store, http_client, clock, provider) -> None:
    def _boom(failure: AuthFailure) -> None:
        raise RuntimeError("listener bug")

    manager = AuthSessionManager(
        config,
        store=store,
        token_client=TokenExchangeClient(http_client),
        user_info=UserInfoClient(http_client),
        clock=clock,
        on_refresh_failure=_boom,
    )
    await store.save(_session(clock(), offset=120))
    provider.token_queue.append(httpx.Response(500, text="nope"))

    assert await manager.get_access_token() == "old"


@pytest.mark.anyio
async def test_require_access_token_raises_when_logged_out(manager) -> None:
    with pytest.raises(NeedsReauthError) as exc_info:
        await manager.require_access_token()

    payload = exc_info.value.to_payload()
    assert payload["error"] == "needs_reauth"
    assert payload["storage_key"] == "anilist"
    assert "reason" not in payload


@pytest.mark.anyio
async def test_require_access_token_returns_token(manager, store, clock) -> None:
    await store.save(_session(clock(), offset=7200))
    assert await manager.require_access_token() == "old"


# --------------------------------------------------------------------------- #
# Logout                                                                      #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_logout_is_idempotent(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=7200))

    await manager.logout()
    assert await manager.is_logged_in() is False
    await manager.logout()

    assert await store.load() == AuthSession.empty()
    assert provider.token_requests == []


@pytest.mark.anyio
async def test_logout_during_refresh_is_not_undone(manager, store, clock, provider) -> None:
    await store.save(_session(clock(), offset=120))
    provider.hold = asyncio.Event()

    caller = asyncio.create_task(manager.get_access_token())
    await provider.entered.wait()
    await manager.logout()
    provider.hold.set()
    await caller

    assert await store.load() == AuthSession.empty()
    assert await manager.is_logged_in() is False
    assert manager.last_refresh_failure.detail == "session changed during refresh"


@pytest.mark.anyio
async def test_logout_while_profile_is_stored_leaves_empty_session(config, http_client, clock) -> None:
    store = _ParkingStore()
    manager = _manager_over(store, config, http_client, clock)
    # the first load during login is the one that precedes the profile save
    store.park_load = True

    login = asyncio.create_task(manager.login(f"{config.redirect_uri}?code=ABC"))
    await store.parked.wait()
    logout = asyncio.create_task(manager.logout())
    await asyncio.sleep(0)
    store.release.set()
    await login
    await logout

    assert await store.load() == AuthSession.empty()
    assert await manager.is_logged_in() is False


@pytest.mark.anyio
async def test_logout_while_refresh_is_saving_is_not_undone(config, http_client, clock, provider) -> None:
    store = _ParkingStore()
    manager = _manager_over(store, config, http_client, clock)
    await store.save(_session(clock(), offset=120))
    store.park_save = True

    caller = asyncio.create_task(manager.get_access_token())
    await store.parked.wait()
    logout = asyncio.create_task(manager.logout())
    await asyncio.sleep(0)
    store.release.set()
    await caller
    await logout

    assert len(provider.grants("refresh_token")) == 1
    assert await store.load() == AuthSession.empty()
    assert await manager.is_logged_in() is False


@pytest.mark.anyio
async def test_aclose_leaves_injected_client_open(manager, http_client) -> None:
    await manager.aclose()
    assert http_client.is_closed is False
