"""Global exception handlers for consistent error responses.

Domain errors map to HTTP statuses by type; anything unexpected becomes a
generic 500. Every body carries the request id for tracing.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from companion.core.errors import (
    AppError,
    AuthenticationAppError,
    ConflictAppError,
    LLMAppError,
    NotFoundAppError,
    PaymentProviderAppError,
    PaymentResourceMissingError,
    PermissionAppError,
    ServiceUnavailableAppError,
)
from companion.core.logging import get_request_id

logger = logging.getLogger(__name__)

# Checked in order; subclasses must precede their bases
_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (AuthenticationAppError, 401),
    (PermissionAppError, 403),
    (NotFoundAppError, 404),
    (PaymentResourceMissingError, 404),
    (ConflictAppError, 409),
    (PaymentProviderAppError, 502),
    (ServiceUnavailableAppError, 503),
    (LLMAppError, 500),
)


def status_code_for(exc: AppError) -> int:
    """Return the HTTP status for a domain error (400 when unmapped)."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Response body::

        {"error": {"code": ..., "message": ..., "request_id": ..., "details": ...}}

    ``details`` is present only when the error carries structured context.
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

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure with its traceback and returns a generic message so no
    implementation detail reaches the client.
    """
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={
            "error_type": type(exc).__name__,
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


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
