"""Per-IP request throttling built on slowapi.

Three tiers, all keyed on the client address:

* ``OTP_LIMIT`` on OTP requests, which cost an SMS each.
* ``AUTH_LIMIT`` on OTP verification, account confirmation and login.
* the default limit, applied by ``SlowAPIMiddleware`` to every other route.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from phone_auth.core.errors import AuthError, ErrorCode
from phone_auth.core.settings import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)

OTP_LIMIT = settings.rate_limit_otp
AUTH_LIMIT = settings.rate_limit_auth


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Answer a throttled request with the usual error envelope."""
    error = AuthError(ErrorCode.TOO_MANY_REQUESTS, "Too many requests. Please try again later.")
    return JSONResponse(status_code=error.status_code, content=error.to_payload())
