"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → appropriate HTTP status (400, 403, 404, 413, 429, 503)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import (
    AppError,
    AuthenticationAppError,
    CounterStoreUnavailable,
    NotFoundAppError,
    PolicyStoreUnavailable,
    QuotaExceededAppError,
    RateLimitedAppError,
    ServiceUnavailableAppError,
    StorageSourceUnavailable,
    UploadTooLargeError,
)
from app.core.logging import get_request_id
from app.core.rate_limit import rate_limit_headers
from app.services.rate_limiter import RateLimitDecision

logger = logging.getLogger(__name__)


# Checked in order; first match wins. Anything else is a client error (400).
_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (AuthenticationAppError, 403),
    (NotFoundAppError, 404),
    (QuotaExceededAppError, 413),
    (UploadTooLargeError, 413),
    (RateLimitedAppError, 429),
    (ServiceUnavailableAppError, 503),
    (CounterStoreUnavailable, 503),
    (PolicyStoreUnavailable, 503),
    (StorageSourceUnavailable, 503),
)

# Expected business rejections, not failures
_INFO_ERRORS = (RateLimitedAppError, QuotaExceededAppError)


def status_code_for(exc: AppError) -> int:
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 400


def _rate_limit_headers(exc: AppError) -> dict[str, str]:
    """Build Retry-After and X-RateLimit-* headers from error details."""

    details = exc.details or {}
    headers: dict[str, str] = {}
    if "retry_after" in details:
        headers["Retry-After"] = str(details["retry_after"])
    if "limit" in details:
        headers["X-RateLimit-Limit"] = str(details["limit"])
    if "remaining" in details:
        headers["X-RateLimit-Remaining"] = str(details["remaining"])
    if "reset_at" in details:
        headers["X-RateLimit-Reset"] = str(details["reset_at"])
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Rate limit rejections also carry Retry-After and X-RateLimit-* headers
    so clients can back off without parsing the body. Other errors raised
    after the limiter admitted the request carry the X-RateLimit-* headers
    of that decision.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = status_code_for(exc)
    level = logging.INFO if isinstance(exc, _INFO_ERRORS) else logging.WARNING

    logger.log(
        level,
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }

    if exc.details:
        error_content["details"] = exc.details

    headers = None
    if settings.rate_limit.include_headers:
        if isinstance(exc, RateLimitedAppError):
            headers = _rate_limit_headers(exc)
        else:
            # Admitted by the limiter, rejected later in the route
            decision = getattr(request.state, "rate_limit", None)
            if isinstance(decision, RateLimitDecision):
                headers = rate_limit_headers(decision)

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning generic message.
    Prevents information leakage (no stack traces to client).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
