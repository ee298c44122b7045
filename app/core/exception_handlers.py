"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → appropriate HTTP status (400, 403, 404, 429, 503)
- Request validation errors → 400 VALIDATION_ERROR
- Framework HTTP errors → their status, code = status name (NOT_FOUND, ...)
- Unexpected Exception → generic 500 (safety net)
- All responses share the envelope
  ``{"success": false, "error": {...}, "timestamp": "..."}`` and carry the
  request_id for distributed tracing
"""

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    NotFoundAppError,
    RateLimitExceededError,
    StoreUnavailableError,
)
from app.core.logging import get_request_id
from app.utils.timestamps import utc_now_iso

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (AuthenticationAppError, 403),
    (NotFoundAppError, 404),
    (RateLimitExceededError, 429),
    (StoreUnavailableError, 503),
    (ConfigurationAppError, 500),
)


def status_code_for(exc: AppError) -> int:
    """Return the HTTP status for a domain error (400 when unmapped)."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def error_envelope(code: str, message: str, details: Any = None) -> dict[str, Any]:
    """Build the JSON body shared by every error response.

    Args:
        code: Machine-readable error code.
        message: Human-readable message.
        details: Optional structured context.

    Returns:
        dict: Response body.
    """
    error_content: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": get_request_id(),
    }
    # Include details only if present (optional structured context)
    if details:
        error_content["details"] = details

    return {
        "success": False,
        "error": error_content,
        "timestamp": utc_now_iso(),
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to appropriate HTTP status codes:
    - ValidationAppError → 400 Bad Request (client fault)
    - AuthenticationAppError → 403 Forbidden (authorization fault)
    - NotFoundAppError → 404 Not Found
    - RateLimitExceededError → 429 Too Many Requests (with rate limit headers)
    - StoreUnavailableError → 503 Service Unavailable
    - ConfigurationAppError → 500 Internal Server Error

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = status_code_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    headers = exc.headers if isinstance(exc, RateLimitExceededError) else None
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(exc.code, exc.message, exc.details),
        headers=headers or None,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures in the standard envelope."""
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    logger.info(
        "request_validation_failed",
        extra={"request_path": request.url.path, "error_count": len(details)},
    )
    return JSONResponse(
        status_code=400,
        content=error_envelope("VALIDATION_ERROR", "Input validation failed", details),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render framework HTTP errors (unknown path, wrong method) in the envelope."""
    try:
        code = HTTPStatus(exc.status_code).name
    except ValueError:
        code = "HTTP_ERROR"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Catches any exception not handled by specific handlers.
    Logs detailed information for debugging while returning generic message.
    Prevents information leakage (no stack traces to client).

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content=error_envelope(
            "INTERNAL_SERVER_ERROR",
            "An unexpected error occurred. Please try again later.",
        ),
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Must be called during app initialization, before route registration.
    Order matters: specific handlers registered before general fallback.

    Args:
        app: FastAPI application instance.

    Example:
        >>> from fastapi import FastAPI
        >>> from app.core.exception_handlers import setup_exception_handlers
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
        >>> # Now all errors are handled consistently
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
