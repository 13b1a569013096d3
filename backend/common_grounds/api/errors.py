"""Translate domain exceptions into JSON error responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from common_grounds.config import Settings, sanitize_error
from common_grounds.exceptions import (
    HTTP_STATUS_BY_KIND,
    CommonGroundsError,
    ErrorKind,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(CommonGroundsError)
    async def handle_domain_error(request: Request, exc: CommonGroundsError) -> JSONResponse:
        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)
        if exc.kind in (ErrorKind.AUTHENTICATION_REQUIRED, ErrorKind.SESSION_EXPIRED):
            headers["WWW-Authenticate"] = "Bearer"
        return JSONResponse(
            status_code=HTTP_STATUS_BY_KIND[exc.kind],
            content=exc.to_dict(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": ErrorKind.VALIDATION_ERROR.value,
                "message": _first_validation_message(exc),
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": sanitize_error(exc, settings=settings),
            },
        )
