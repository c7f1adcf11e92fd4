"""Starlette application hosting the OAuth redirect target locally."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from anilist_session.auth.config import DEFAULT_ENV_PREFIX, OAuthClientConfig
from anilist_session.auth.manager import AuthSessionManager
from anilist_session.auth.store import DiskCredentialStore
from anilist_session.utils.environment import is_oauth_configured
from anilist_session.utils.logging import configure_logging, mask_sensitive

from .auth import build_auth_routes
from .correlation import CorrelationIdMiddleware

logger = logging.getLogger("anilist-session.server.main")


async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def create_app(manager: AuthSessionManager, *, base_path: str = "/auth") -> Starlette:
    """Assemble the callback application around an existing *manager*."""

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info(
            "Callback server starting (client_id=%s, storage_key=%s)",
            mask_sensitive(manager.config.client_id),
            manager.config.storage_key,
        )
        try:
            yield
        finally:
            await manager.aclose()
            logger.info("Callback server stopped")

    routes = [
        Route("/healthz", health_check, methods=["GET"], include_in_schema=False),
        *build_auth_routes(manager, base_path=base_path),
    ]
    app = Starlette(
        routes=routes,
        middleware=[Middleware(CorrelationIdMiddleware)],
        lifespan=lifespan,
    )
    app.state.auth_manager = manager
    return app


def main() -> None:
    """Run the callback server with settings from the environment."""
    import uvicorn

    configure_logging(os.getenv("ANILIST_SESSION_LOG_LEVEL", "INFO"))
    if not is_oauth_configured(DEFAULT_ENV_PREFIX):
        logger.error("OAuth client is not configured; set %sCLIENT_ID and friends", DEFAULT_ENV_PREFIX)
        raise SystemExit(2)
    config = OAuthClientConfig.from_env(DEFAULT_ENV_PREFIX)
    manager = AuthSessionManager(config, store=DiskCredentialStore(storage_key=config.storage_key))
    host = os.getenv("ANILIST_SESSION_HOST", "127.0.0.1")
    port = int(os.getenv("ANILIST_SESSION_PORT", "8765"))
    logger.info("Open http://%s:%s/auth/login in a browser to log in", host, port)
    uvicorn.run(create_app(manager), host=host, port=port)


if __name__ == "__main__":
    main()
