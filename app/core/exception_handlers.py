"""Global exception handlers for consistent error responses.

Design:
- ValidationAppError → 400
- ConfigurationAppError → 500 with a generic message (never echoes details,
  which may name missing secrets)
- UpstreamAppError → the upstream's status when known, else 500
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing

Rate limit denials never reach these handlers; they are ordinary responses.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import AppError, ConfigurationAppError, UpstreamAppError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)

CONFIGURATION_ERROR_MESSAGE = "The service is not configured to handle this request."


def _status_for(exc: AppError) -> int:
    if isinstance(exc, ConfigurationAppError):
        return 500
    if isinstance(exc, UpstreamAppError):
        return exc.http_status
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = _status_for(exc)
    is_configuration_error = isinstance(exc, ConfigurationAppError)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": CONFIGURATION_ERROR_MESSAGE if is_configuration_error else exc.message,
        "request_id": get_request_id(),
    }
    if exc.details and not is_configuration_error:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message; no stack traces or exception text reach the client.
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
    """Register all exception handlers with the FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
