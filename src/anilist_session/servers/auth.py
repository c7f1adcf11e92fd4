"""Browser-facing OAuth endpoints of the local callback server.

Every handler reads its HTTP inputs, makes one call into the
``AuthSessionManager`` and renders the outcome; session rules live in the
manager only.  Routes are mounted under ``base_path`` (``/auth`` unless the
embedding app chooses another prefix).

Nothing secret is rendered or logged here: the callback page shows the
manager's user-facing message, and log lines carry the request's correlation
ID through :func:`~anilist_session.auth.log_utils.get_auth_logger`.
"""

from __future__ import annotations

import html

from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from anilist_session.auth.log_utils import AuthLogger, get_auth_logger
from anilist_session.auth.manager import AuthSessionManager


def _page(title: str, text: str, status_code: int = 200) -> HTMLResponse:
    """Minimal HTML document shown in the browser tab after the redirect."""
    title, text = html.escape(title), html.escape(text)
    return HTMLResponse(
        "<!doctype html><html lang='en'><head><meta charset='utf-8'>"
        f"<title>{title}</title></head><body><h1>{title}</h1><p>{text}</p></body></html>",
        status_code=status_code,
    )


def _request_log(log: AuthLogger, request: Request) -> AuthLogger:
    return log.bind(correlation_id=getattr(request.state, "correlation_id", None))


def _wants_redirect(request: Request) -> bool:
    """``format`` wins; otherwise browsers (``Accept: text/html``) get a 303."""
    fmt = request.query_params.get("format")
    if fmt is not None:
        return fmt == "redirect"
    return "text/html" in request.headers.get("accept", "").lower()


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #
def build_auth_routes(manager: AuthSessionManager, *, base_path: str = "/auth") -> list[Route]:
    """Return the OAuth endpoints bound to *manager* under *base_path*."""
    prefix = "/" + base_path.strip("/") if base_path.strip("/") else ""
    log = get_auth_logger(
        base_logger_name="anilist-session.server.auth",
        storage_key=manager.config.storage_key,
    )

    # ----- GET /auth/login ------------------------------------------------ #
    async def login_start(request: Request) -> Response:
        authorize_url = manager.build_authorize_url()
        _request_log(log, request).info("Login started")
        if _wants_redirect(request):
            return RedirectResponse(authorize_url, status_code=303)
        return JSONResponse({"authorize_url": authorize_url})

    # ----- GET /auth/callback --------------------------------------------- #
    async def login_callback(request: Request) -> Response:
        result = await manager.login(str(request.url))
        rlog = _request_log(log, request)
        if not result.stored:
            rlog.info("Callback rejected (%s)", result.failure.kind.value if result.failure else "-")
            return _page("Authorization failed", result.message, 400)
        rlog.info("Callback stored a session")
        return _page("Authorization successful", f"{result.message} You may close this window.")

    # ----- GET /auth/status ----------------------------------------------- #
    async def status(request: Request) -> Response:
        if not await manager.is_logged_in():
            return JSONResponse(
                {"logged_in": False, "user_id": None, "username": None, "expires_soon": False}
            )
        return JSONResponse(
            {
                "logged_in": True,
                "user_id": await manager.get_user_id(),
                "username": await manager.get_username(),
                "expires_soon": await manager.token_will_expire_soon(),
            }
        )

    # ----- POST /auth/logout ---------------------------------------------- #
    async def logout(request: Request) -> Response:
        await manager.logout()
        _request_log(log, request).info("Session cleared")
        return Response(status_code=204)

    return [
        Route(f"{prefix}/login", login_start, methods=["GET"]),
        Route(f"{prefix}/callback", login_callback, methods=["GET"]),
        Route(f"{prefix}/status", status, methods=["GET"]),
        Route(f"{prefix}/logout", logout, methods=["POST"]),
    ]
