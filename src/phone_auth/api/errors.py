"""Uniform ``{message, error}`` envelopes for every failure.

Internal details of unexpected errors are logged and never returned.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from phone_auth.api.rate_limit import rate_limit_exceeded_handler
from phone_auth.core.errors import AuthError, ErrorCode

logger = logging.getLogger(__name__)

GENERIC_SERVER_MESSAGE = "Server error"


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an expected identity failure."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed input as ``INVALID_INPUT`` with the first problem found."""
    errors = exc.errors()
    message = str(errors[0].get("msg", "Invalid input")) if errors else "Invalid input"
    error = AuthError(ErrorCode.INVALID_INPUT, message)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log anything unexpected and answer with a generic 500."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = AuthError(ErrorCode.SERVER_ERROR, GENERIC_SERVER_MESSAGE)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope handlers on ``app``."""
    app.add_exception_handler(AuthError, auth_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
