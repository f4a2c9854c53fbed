"""
Request middleware — correlation IDs and per-request timing.

Every response carries:
    X-Request-ID     echoed from the client, or freshly generated
    X-Process-Time   wall time spent in the app, e.g. "812.4ms"

A submission can legitimately take up to N × CHANNEL_TIMEOUT_SECONDS
while channels fail over, so duration alone never raises the log level;
only the status code does.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Health checks and docs are served but not logged
_UNLOGGED_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health")


def _log_request(request: Request, status_code: int, duration_ms: float, client_ip: str) -> None:
    path = request.url.path
    if path.startswith(_UNLOGGED_PREFIXES) and status_code < 500:
        return
    if status_code >= 500:
        level = logging.ERROR
    elif status_code >= 400:
        level = logging.WARNING
    else:
        level = logging.INFO
    logger.log(
        level,
        "%s %s → %d (%.1fms) [%s]",
        request.method, path, status_code, duration_ms, client_ip,
        extra={"duration_ms": duration_ms, "status_code": status_code, "endpoint": path},
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the log context and times the request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        client_ip = request.client.host if request.client else "unknown"
        set_request_context(
            request_id=request_id,
            client_ip=client_ip,
            endpoint=request.url.path,
            method=request.method,
        )

        start = time.perf_counter()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            _log_request(
                request,
                response.status_code if response is not None else 500,
                duration_ms,
                client_ip,
            )
            set_request_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"
        return response
