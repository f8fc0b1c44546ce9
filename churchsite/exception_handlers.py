"""
Global Exception Handlers for the church site

This module provides centralized exception handling for consistent
error responses across the application.

Error Response Format:
{
    "error": {
        "status_code": 409,
        "error_code": "LIKE_ALREADY_EXISTS",
        "message": "Already liked",
        "type": "Conflict",
        "details": {"post_id": 12},
        "path": "/api/blog/welcome/likes"
    }
}
"""

import logging
from typing import Any, Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from churchsite.exceptions import ChurchSiteError, ErrorCode

logger = logging.getLogger(__name__)


def create_error_response(
    status_code: int,
    message: str,
    error_code: str | ErrorCode | None = None,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        status_code: HTTP status code
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details
        path: Request path that caused the error

    Returns:
        JSONResponse with standardized error format
    """
    error_response: dict[str, Any] = {
        "error": {
            "status_code": status_code,
            "message": message,
            "type": get_error_type(status_code),
        }
    }

    if error_code:
        error_response["error"]["error_code"] = error_code.value if isinstance(error_code, ErrorCode) else error_code

    if details:
        error_response["error"]["details"] = details

    if path:
        error_response["error"]["path"] = path

    return JSONResponse(status_code=status_code, content=error_response)


def get_error_type(status_code: int) -> str:
    """Get a human-readable error type based on status code."""
    error_types = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        409: "Conflict",
        422: "Validation Error",
        429: "Too Many Requests",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return error_types.get(status_code, "Error")


def get_http_error_code(status_code: int) -> str:
    """Map HTTP status codes to error codes for HTTPException."""
    error_code_map = {
        400: ErrorCode.VALIDATION_FAILED.value,
        401: ErrorCode.AUTH_FAILED.value,
        403: ErrorCode.AUTH_PERMISSION_DENIED.value,
        404: ErrorCode.RESOURCE_NOT_FOUND.value,
        409: ErrorCode.VALIDATION_DUPLICATE_RESOURCE.value,
        422: ErrorCode.VALIDATION_FAILED.value,
        429: ErrorCode.RATE_LIMIT_EXCEEDED.value,
        500: ErrorCode.INTERNAL_ERROR.value,
        503: ErrorCode.SERVICE_UNAVAILABLE.value,
    }
    return error_code_map.get(status_code, ErrorCode.UNKNOWN_ERROR.value)


async def church_site_exception_handler(request: Request, exc: ChurchSiteError) -> JSONResponse:
    """Handle domain exceptions raised by the engagement services."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={
            "status_code": exc.status_code,
            "error_code": exc.error_code.value,
            "path": request.url.path,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details if exc.details else None,
        path=request.url.path,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions."""
    logger.warning(
        f"HTTPException: {exc.detail}",
        extra={"status_code": exc.status_code, "path": request.url.path},
    )

    response = create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=get_http_error_code(exc.status_code),
        path=request.url.path,
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Malformed engagement payloads are client errors that are never retried,
    so they are reported as 400 with per-field detail.
    """
    errors = []

    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})

    logger.info(f"Validation error on {request.url.path}", extra={"errors": errors})

    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        message="Invalid request body",
        error_code=ErrorCode.VALIDATION_FAILED,
        details={"validation_errors": errors},
        path=request.url.path,
    )


async def throttled_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle slowapi throttling on like/unlike endpoints."""
    logger.info(f"Throttled request on {request.url.path}: {exc.detail}")

    response = create_error_response(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        message=f"Rate limit exceeded: {exc.detail}",
        error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
        path=request.url.path,
    )
    limiter = getattr(request.app.state, "limiter", None)
    if limiter is not None and getattr(request.state, "view_rate_limit", None) is not None:
        response = limiter._inject_headers(response, request.state.view_rate_limit)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Internal details are never exposed in the response body.
    """
    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code=ErrorCode.INTERNAL_ERROR,
        path=request.url.path,
    )


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(ChurchSiteError, church_site_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, throttled_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered successfully")
