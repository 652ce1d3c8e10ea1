"""
Global exception handlers for the FastAPI application.
Every error leaves the API as {"detail", "code"} plus an X-Request-ID header.
"""

import logging
import uuid
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from moderation_core.core.exceptions import AppException, DatabaseError, ErrorCode

logger = logging.getLogger(__name__)

STATUS_TO_CODE = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.INSUFFICIENT_PERMISSIONS,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.INVALID_ACTION,
    409: ErrorCode.INVALID_ACTION,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
}


def generate_request_id() -> str:
    """Generate a short request ID for error tracing"""
    return str(uuid.uuid4())[:8]


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    request_id = generate_request_id()

    if isinstance(exc, DatabaseError):
        logger.error(
            "DatabaseError: %s (cause=%r, request_id=%s, path=%s)",
            exc.message,
            exc.cause,
            request_id,
            request.url.path,
        )
    else:
        logger.warning(
            "AppException: %s (code=%s, status=%d, request_id=%s, path=%s)",
            exc.message,
            exc.code.value,
            exc.status_code,
            request_id,
            request.url.path,
        )

    headers = {"X-Request-ID": request_id}
    retry_after = exc.metadata.get("retry_after")
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Pydantic request validation errors, reported with field locations."""
    request_id = generate_request_id()

    logger.warning(
        "ValidationError: %s (request_id=%s, path=%s)",
        exc.errors(),
        request_id,
        request.url.path,
    )

    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]

    response_body: dict[str, Any] = {
        "detail": errors,
        "code": ErrorCode.VALIDATION_ERROR.value,
    }

    return JSONResponse(
        status_code=422,
        content=response_body,
        headers={"X-Request-ID": request_id},
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    request_id = generate_request_id()
    error_code = STATUS_TO_CODE.get(exc.status_code, ErrorCode.DATABASE_ERROR)

    logger.warning(
        "HTTPException: %s (status=%d, request_id=%s, path=%s)",
        exc.detail,
        exc.status_code,
        request_id,
        request.url.path,
    )

    headers = {"X-Request-ID": request_id}
    if exc.headers:
        headers.update(exc.headers)

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail or "An error occurred", "code": error_code.value},
        headers=headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the traceback, return an opaque 500."""
    request_id = generate_request_id()

    logger.exception(
        "Unhandled exception (request_id=%s, path=%s): %s",
        request_id,
        request.url.path,
        str(exc),
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error. Please try again later.",
            "code": ErrorCode.DATABASE_ERROR.value,
        },
        headers={"X-Request-ID": request_id},
    )
