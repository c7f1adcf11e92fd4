"""Identity lookup performed right after a successful code exchange."""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx

from anilist_session.auth.errors import AuthFailure, FailureKind
from anilist_session.auth.models import UserProfile
from anilist_session.auth.token_client import provider_error_detail

_LOG = logging.getLogger("anilist-session.auth.user_info")

VIEWER_QUERY: Final[str] = "query { Viewer { id name } }"


def _extract_viewer(body: Any) -> dict[str, Any] | None:
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if isinstance(data, dict):
        viewer = data.get("Viewer")
        return viewer if isinstance(viewer, dict) else None
    # plain REST identity endpoints answer with the profile itself
    return body if "id" in body else None


class UserInfoClient:
    """Fetches ``{id, name}`` of the token owner from the identity endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 15.0,
    ) -> None:
        self._http = http_client
        self._owns_http = http_client is None
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def fetch_profile(self, endpoint: str, access_token: str) -> UserProfile | AuthFailure:
        try:
            resp = await self._client().post(
                endpoint,
                json={"query": VIEWER_QUERY},
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.TransportError as exc:
            _LOG.warning("User info request failed: %s", type(exc).__name__)
            return AuthFailure(FailureKind.NETWORK_ERROR, f"{type(exc).__name__}: {exc}")

        if not resp.is_success:
            detail = provider_error_detail(resp)
            _LOG.warning("Identity endpoint rejected request: %s", detail)
            return AuthFailure(FailureKind.PROVIDER_ERROR, detail)

        try:
            body = resp.json()
        except ValueError:
            return AuthFailure(FailureKind.MALFORMED_RESPONSE, "user info response is not JSON")

        viewer = _extract_viewer(body)
        if viewer is None:
            errors = body.get("errors") if isinstance(body, dict) else None
            detail = "viewer missing in user info response"
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                detail = str(errors[0].get("message") or detail)[:200]
            _LOG.warning("Unusable user info response: %s", detail)
            return AuthFailure(FailureKind.MALFORMED_RESPONSE, detail)

        user_id, name = viewer.get("id"), viewer.get("name")
        if isinstance(user_id, bool) or not isinstance(user_id, int) or not isinstance(name, str):
            return AuthFailure(FailureKind.MALFORMED_RESPONSE, "viewer id/name have unexpected types")

        _LOG.debug("Fetched profile for user_id=%s", user_id)
        return UserProfile(id=user_id, name=name)
