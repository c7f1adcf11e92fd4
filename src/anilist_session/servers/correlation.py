"""Per-request correlation IDs for the callback server.

Each request gets an ID that handlers read from ``request.state.correlation_id``
and that is echoed in the ``X-Correlation-ID`` response header.  A
well-formed ID supplied by the caller is reused; otherwise a UUID4 hex is
generated.
"""

from __future__ import annotations

import logging
import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

HEADER = "X-Correlation-ID"
_ACCEPTED = re.compile(r"[A-Za-z0-9._-]{1,64}")
_log = logging.getLogger("anilist-session.server.correlation")


def correlation_id_for(request: Request, header: str = HEADER) -> str:
    supplied = request.headers.get(header, "")
    # client-supplied ids end up in logs, so only well-formed ones are kept
    return supplied if _ACCEPTED.fullmatch(supplied) else uuid.uuid4().hex


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tags every request/response pair with a correlation ID."""

    def __init__(self, app, header_name: str = HEADER) -> None:  # noqa: ANN001
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next) -> Response:  # noqa: ANN001
        cid = correlation_id_for(request, self.header_name)
        request.state.correlation_id = cid
        _log.debug("%s %s", request.method, request.url.path, extra={"correlation_id": cid})
        response = await call_next(request)
        response.headers[self.header_name] = cid
        return response
