"""HTTP calls against the provider's token endpoint.

Both grants (``authorization_code`` and ``refresh_token``) share one request
path.  Every outcome is returned as a :data:`TokenExchangeResult`; transport
faults, HTTP errors and unusable bodies never escape as exceptions.

SECURITY NOTE
-------------
Codes, tokens and the client secret are never logged.  Provider error
messages are logged truncated, as they are free text chosen by the provider.
"""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx

from anilist_session.auth.errors import AuthFailure, FailureKind
from anilist_session.auth.models import TokenExchangeResult, TokenExchangeSuccess

_LOG = logging.getLogger("anilist-session.auth.token_client")

DEFAULT_EXPIRES_IN: Final[int] = 3600
# a century; larger values are treated as malformed
MAX_EXPIRES_IN: Final[int] = 100 * 365 * 24 * 3600
_DETAIL_MAX: Final[int] = 200


def provider_error_detail(resp: httpx.Response) -> str:
    """Best-effort extraction of a provider's error message from *resp*."""
    try:
        body = resp.json()
    except ValueError:
        text = resp.text.strip()
        return f"HTTP {resp.status_code}: {text[:_DETAIL_MAX]}" if text else f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("message", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return f"HTTP {resp.status_code}: {value[:_DETAIL_MAX]}"
    return f"HTTP {resp.status_code}"


def _parse_token_body(resp: httpx.Response) -> TokenExchangeResult:
    try:
        data: Any = resp.json()
    except ValueError:
        return AuthFailure(FailureKind.MALFORMED_RESPONSE, "token response is not JSON")
    if not isinstance(data, dict):
        return AuthFailure(FailureKind.MALFORMED_RESPONSE, "token response is not an object")

    if data.get("error"):
        # some providers answer 200 with an error document
        return AuthFailure(FailureKind.PROVIDER_ERROR, provider_error_detail(resp))

    access_token = data.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        return AuthFailure(FailureKind.MALFORMED_RESPONSE, "token response missing access_token")

    raw_expires = data.get("expires_in", DEFAULT_EXPIRES_IN)
    try:
        if isinstance(raw_expires, bool):
            raise TypeError("boolean expires_in")
        expires_in = int(raw_expires)
    except (TypeError, ValueError, OverflowError):  # OverflowError: "Infinity"
        return AuthFailure(FailureKind.MALFORMED_RESPONSE, "token response has invalid expires_in")
    if expires_in > MAX_EXPIRES_IN:
        return AuthFailure(FailureKind.MALFORMED_RESPONSE, "token response has invalid expires_in")

    refresh_token = data.get("refresh_token")
    if not isinstance(refresh_token, str) or not refresh_token:
        refresh_token = None

    return TokenExchangeSuccess(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in_seconds=expires_in,
    )


class TokenExchangeClient:
    """Performs the two token-endpoint exchanges of the Authorization Code grant.

    Parameters
    ----------
    http_client:
        Optional shared :class:`httpx.AsyncClient`.  When omitted the client
        creates (lazily) and owns one, closed by :meth:`aclose`.
    timeout:
        Seconds for connect/read when the client owns its HTTP client.
    """

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

    # ------------------------------------------------------------------ #
    # Grants                                                             #
    # ------------------------------------------------------------------ #
    async def exchange_code(
        self,
        token_endpoint: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        code: str,
    ) -> TokenExchangeResult:
        """Exchange an authorization *code* for tokens."""
        payload = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "code": code,
        }
        return await self._post(token_endpoint, payload, grant="authorization_code")

    async def refresh(
        self,
        token_endpoint: str,
        client_id: str,
        client_secret: str,
        refresh_token: str,
    ) -> TokenExchangeResult:
        """Obtain a new access token with *refresh_token*.

        ``refresh_token`` on the returned success is ``None`` when the provider
        did not rotate it; callers must keep the previous one.
        """
        payload = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        }
        return await self._post(token_endpoint, payload, grant="refresh_token")

    # ---------------- internal helpers --------------------------------- #
    async def _post(self, url: str, payload: dict[str, str], *, grant: str) -> TokenExchangeResult:
        try:
            resp = await self._client().post(
                url,
                data=payload,
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as exc:
            _LOG.warning("Token request (%s) failed: %s", grant, type(exc).__name__)
            return AuthFailure(FailureKind.NETWORK_ERROR, f"{type(exc).__name__}: {exc}")

        if not resp.is_success:
            detail = provider_error_detail(resp)
            _LOG.warning("Token endpoint rejected %s grant: %s", grant, detail)
            return AuthFailure(FailureKind.PROVIDER_ERROR, detail)

        result = _parse_token_body(resp)
        if isinstance(result, AuthFailure):
            _LOG.warning("Unusable token response for %s grant: %s", grant, result.detail)
        else:
            _LOG.debug(
                "Token endpoint granted %s (expires in %ss, rotated refresh token: %s)",
                grant,
                result.expires_in_seconds,
                result.refresh_token is not None,
            )
        return result
