"""Authorization-code extraction from OAuth redirect URIs.

Two tiers are applied in order:

1. **Strict** – the URI must target the registered redirect URI (scheme, host
   and path) and carry a well-formed ``application/x-www-form-urlencoded``
   query.  An explicit ``error`` parameter is reported, never skipped.
2. **Lenient** – only when the strict tier found neither a code nor an error,
   the raw ``error`` and ``code`` query parameters are read directly from the
   URI text, the error taking precedence as in the strict tier.  Some
   providers and intermediate apps emit redirects that the strict tier
   rejects (custom-scheme hosts, stray query fields, ``;`` separators).

Neither tier logs the code itself.
"""

from __future__ import annotations

import logging
import re
from typing import Final
from urllib.parse import SplitResult, parse_qsl, unquote_plus, urlsplit

from anilist_session.auth.errors import AuthFailure, FailureKind

_LOG = logging.getLogger("anilist-session.auth.redirect")

ACCESS_DENIED: Final[str] = "access_denied"
_RAW_SEPARATORS = re.compile(r"[&;]")


def _normalized_target(parts: SplitResult) -> tuple[str, str, str]:
    return (parts.scheme.lower(), parts.netloc.lower(), parts.path.rstrip("/") or "/")


def _provider_error(error: str, description: str) -> AuthFailure:
    kind = FailureKind.AUTHORIZATION_DENIED if error == ACCESS_DENIED else FailureKind.PROVIDER_ERROR
    _LOG.info("Provider redirected with error=%s", error)
    return AuthFailure(kind, description or error)


def _raw_query_params(redirect_uri: str) -> dict[str, str]:
    """First occurrence of each query field, split on ``&`` and ``;``."""
    _, sep, rest = redirect_uri.partition("?")
    if not sep:
        return {}
    params: dict[str, str] = {}
    for field in _RAW_SEPARATORS.split(rest.split("#", 1)[0]):
        name, eq, value = field.partition("=")
        value = unquote_plus(value.strip())
        if eq and value:
            params.setdefault(name.strip(), value)
    return params


class RedirectParser:
    """Extracts the authorization code (or provider error) from a callback URI.

    Parameters
    ----------
    expected_redirect_uri:
        Registered redirect URI.  When given, the strict tier only accepts
        callbacks aimed at it; mismatches fall through to the lenient tier.
    """

    def __init__(self, expected_redirect_uri: str | None = None) -> None:
        self._expected: tuple[str, str, str] | None = None
        if expected_redirect_uri:
            self._expected = _normalized_target(urlsplit(expected_redirect_uri))

    def parse(self, redirect_uri: str) -> str | AuthFailure:
        """Return the authorization code or a typed failure."""
        strict = self.parse_strict(redirect_uri)
        if strict is not None:
            return strict

        raw = _raw_query_params(redirect_uri)
        if raw.get("error"):
            return _provider_error(raw["error"], raw.get("error_description", ""))
        if raw.get("code"):
            _LOG.info("Authorization code recovered by lenient redirect parsing")
            return raw["code"]

        _LOG.warning("Redirect carried neither code nor error")
        return AuthFailure(
            FailureKind.MISSING_AUTHORIZATION_CODE,
            "no code or error parameter in redirect URI",
        )

    # ------------------------------------------------------------------ #
    # Tiers                                                              #
    # ------------------------------------------------------------------ #
    def parse_strict(self, redirect_uri: str) -> str | AuthFailure | None:
        """Standards-compliant interpretation; ``None`` when not interpretable."""
        try:
            parts = urlsplit(redirect_uri.strip())
        except ValueError:
            return None
        if not parts.scheme or not parts.query:
            return None
        if self._expected is not None and _normalized_target(parts) != self._expected:
            _LOG.debug("Redirect target does not match the registered redirect URI")
            return None

        try:
            pairs = parse_qsl(parts.query, keep_blank_values=True, strict_parsing=True)
        except ValueError:
            _LOG.debug("Redirect query is not strictly form-encoded")
            return None
        params: dict[str, str] = {}
        for key, value in pairs:
            params.setdefault(key, value)

        error = params.get("error")
        if error:
            return _provider_error(error, params.get("error_description", ""))

        code = params.get("code")
        return code or None

    def parse_lenient(self, redirect_uri: str) -> str | None:
        """Read the raw ``code`` query parameter from the URI text."""
        return _raw_query_params(redirect_uri).get("code")
