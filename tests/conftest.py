"""Shared fixtures: fake clock, client config and an in-process OAuth provider."""

from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest

from anilist_session.auth.clock import FrozenClock
from anilist_session.auth.config import OAuthClientConfig
from anilist_session.auth.manager import AuthSessionManager
from anilist_session.auth.store import MemoryCredentialStore
from anilist_session.auth.token_client import TokenExchangeClient
from anilist_session.auth.user_info import UserInfoClient

# --------------------------------------------------------------------------- #
# Constants                                                                   #
# --------------------------------------------------------------------------- #
NOW = 1_700_000_000.0
REDIRECT_URI = "anilist-session://callback"
TOKEN_URL = "https://auth.example.test/api/v2/oauth/token"
AUTHORIZE_URL = "https://auth.example.test/api/v2/oauth/authorize"
USER_INFO_URL = "https://graphql.example.test/"


# --------------------------------------------------------------------------- #
# Fake provider                                                               #
# --------------------------------------------------------------------------- #
class FakeProvider:
    """``httpx.MockTransport`` handler emulating the token and identity endpoints.

    Token responses are taken from ``token_queue`` (FIFO) and fall back to
    ``default_token``.  Queue entries may be dicts (200 JSON), ``httpx.Response``
    objects or exceptions to raise.
    """

    def __init__(self) -> None:
        self.token_requests: list[dict[str, str]] = []
        self.user_info_requests: list[httpx.Request] = []
        self.token_queue: list[Any] = []
        self.default_token: dict[str, Any] = {
            "access_token": "tok1",
            "refresh_token": "ref1",
            "expires_in": 3600,
        }
        self.viewer: dict[str, Any] = {"id": 42, "name": "spike"}
        self.user_info_response: httpx.Response | None = None
        # set `hold` to park token requests until the test releases them
        self.hold: asyncio.Event | None = None
        self.entered = asyncio.Event()

    def grants(self, grant_type: str) -> list[dict[str, str]]:
        return [r for r in self.token_requests if r.get("grant_type") == grant_type]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            self.token_requests.append(dict(parse_qsl(request.content.decode())))
            self.entered.set()
            if self.hold is not None:
                await self.hold.wait()
            entry = self.token_queue.pop(0) if self.token_queue else self.default_token
            if isinstance(entry, Exception):
                raise entry
            if isinstance(entry, httpx.Response):
                return entry
            return httpx.Response(200, json=entry)
        if str(request.url) == USER_INFO_URL:
            self.user_info_requests.append(request)
            if self.user_info_response is not None:
                return self.user_info_response
            return httpx.Response(200, json={"data": {"Viewer": self.viewer}})
        return httpx.Response(404, json={"error": "not_found"})


# --------------------------------------------------------------------------- #
# Options                                                                     #
# --------------------------------------------------------------------------- #
def pytest_addoption(parser):
    """Add the --integration switch used by tests/integration."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests against the real provider",
    )


# --------------------------------------------------------------------------- #
# Fixtures                                                                    #
# --------------------------------------------------------------------------- #
@pytest.fixture()
def anyio_backend() -> str:
    """Pin async tests to asyncio; the coordinator relies on asyncio tasks."""
    return "asyncio"


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture()
def config() -> OAuthClientConfig:
    return OAuthClientConfig(
        client_id="client-123",
        client_secret="s3cret",
        redirect_uri=REDIRECT_URI,
        authorization_endpoint=AUTHORIZE_URL,
        token_endpoint=TOKEN_URL,
        user_info_endpoint=USER_INFO_URL,
    )


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def http_client(provider: FakeProvider) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))


@pytest.fixture()
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture()
def manager(
    config: OAuthClientConfig,
    store: MemoryCredentialStore,
    http_client: httpx.AsyncClient,
    clock: FrozenClock,
) -> AuthSessionManager:
    return AuthSessionManager(
        config,
        store=store,
        token_client=TokenExchangeClient(http_client),
        user_info=UserInfoClient(http_client),
        clock=clock,
    )
