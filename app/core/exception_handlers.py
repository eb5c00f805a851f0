"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept domain and
unexpected errors and return consistent JSON responses with proper HTTP
status codes and traceability.

Design:
- AppError subclasses → mapped HTTP status (400, 403, 413, 429)
- RateLimitAppError also sets Retry-After and, when enabled, X-RateLimit-*
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    PayloadTooLargeAppError,
    RateLimitAppError,
)
from app.core.config import settings
from app.core.logging import get_request_id
from app.core.rate_limit import rate_limit_headers

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, RateLimitAppError):
        return 429
    if isinstance(exc, AuthenticationAppError):
        return 403
    if isinstance(exc, PayloadTooLargeAppError):
        return 413
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = _status_for(exc)

    # 429 is a normal outcome; keep it out of warning-level logs
    log = logger.info if status_code == 429 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
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
    if isinstance(exc, RateLimitAppError):
        headers = rate_limit_headers(exc, include_limits=settings.app.rate_limit_include_headers)

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message, so no stack traces reach the client.
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
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with a FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
