"""Global exception handlers for consistent error responses.

Every error body has the same shape::

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": {...}}}

``details`` is only present when the error carries some. Status codes:

- ValidationAppError → 400
- UpstreamAppError → 502
- any other AppError → 500
- unexpected exceptions → 500 with a generic message (nothing leaks)

Rate limit rejections are plain ``HTTPException(429)`` and keep FastAPI's
default handling. Store failures and tampered tokens are recovered inside
the stores and never reach this module.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import AppError, ErrorDetails, UpstreamAppError, ValidationAppError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ValidationAppError, 400),
    (UpstreamAppError, 502),
)


def status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: ErrorDetails | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": get_request_id(),
    }
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map a domain error to its status code and the common error body."""
    status_code = status_for(exc)
    logger.warning(
        "http.app_error",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
        },
    )
    return _error_response(status_code, exc.code, exc.message, exc.details)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Safety net for anything unexpected.

    The exception type and message are logged; the client only gets a
    generic message and the request id to quote.
    """
    logger.error(
        "http.unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return _error_response(
        500,
        "internal_server_error",
        "An unexpected error occurred. Please try again later.",
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers, specific before general.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
