"""Request ID middleware — correlate dashboard reads in the logs.

Learn: Every HTTP request gets an ID, either from the incoming X-Request-ID
header or a fresh UUID. It is bound to structlog's contextvars together with
the method and path, so cache hits/misses and query logs emitted while
serving the request carry the same ID. WebSocket traffic bypasses
BaseHTTPMiddleware; sockets bind their own `view` instead.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.debug(
            "http.request",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response
