"""HTTP middleware for request correlation and request statistics.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Injects request_id into response headers for client-side tracking
- Measures total request duration and includes it in response headers
- Copies the X-RateLimit-* headers of an allowed request onto error
  responses rendered by the exception handlers
- Logs one ``request.completed`` line per request (method, path, status,
  duration) so throttled traffic is visible next to served traffic
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID propagation and completion logging.

    If the client provides the configured request ID header (``X-Request-ID``
    by default), that value is used. Otherwise, a new UUID is generated. The
    ID is propagated back in the response headers and stored in contextvars
    so rate limit and error logs emitted while serving the request carry it.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "rate_limited": response.status_code == 429,
            },
        )
    finally:
        clear_request_id()

    # Allowed requests that end in an error response keep their quota headers
    for name, value in getattr(request.state, "rate_limit_headers", {}).items():
        response.headers.setdefault(name, value)

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
