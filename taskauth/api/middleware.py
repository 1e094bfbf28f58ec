"""Middleware for request processing and observability."""

import re
import time
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_ID_HEADER = "X-Correlation-Id"

# Client-supplied ids end up in every log line, so only short plain tokens are accepted
_CORRELATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

logger = structlog.get_logger(__name__)


def correlation_id_for(request: Request) -> str:
    """Return the caller's correlation id if well formed, else a fresh UUID4."""
    incoming = request.headers.get(CORRELATION_ID_HEADER)
    if incoming and _CORRELATION_ID_PATTERN.match(incoming):
        return incoming
    return str(uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and log its outcome.

    The id is stored in ``request.state.correlation_id``, bound to the
    structlog context together with the method and path, and echoed in the
    ``X-Correlation-Id`` response header. One ``request_completed`` event is
    logged per request with the status and duration.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = correlation_id_for(request)
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response = await call_next(request)

        principal = getattr(request.state, "principal", None)
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            user_id=str(principal.user_id) if principal else None,
        )

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
