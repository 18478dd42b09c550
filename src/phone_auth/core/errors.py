"""Typed authentication errors and their HTTP mapping."""

from __future__ import annotations

from enum import StrEnum

from fastapi import status


class ErrorCode(StrEnum):
    """Stable machine-readable error codes returned to clients."""

    INVALID_INPUT = "INVALID_INPUT"
    USER_EXISTS = "USER_EXISTS"
    OTP_NOT_FOUND = "OTP_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ALREADY_VERIFIED = "ALREADY_VERIFIED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_OTP = "INVALID_OTP"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    UNAUTHORIZED = "UNAUTHORIZED"
    OTP_EXPIRED = "OTP_EXPIRED"
    USER_FREEZE = "USER_FREEZE"
    FORBIDDEN = "FORBIDDEN"
    OVER_LIMIT = "OVER_LIMIT"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    SERVER_ERROR = "SERVER_ERROR"


DEFAULT_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: 422,
    ErrorCode.USER_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.OTP_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ALREADY_VERIFIED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TOKEN: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_OTP: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.INVALID_PASSWORD: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.OTP_EXPIRED: status.HTTP_403_FORBIDDEN,
    ErrorCode.USER_FREEZE: status.HTTP_403_FORBIDDEN,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.OVER_LIMIT: status.HTTP_403_FORBIDDEN,
    ErrorCode.TOO_MANY_REQUESTS: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AuthError(Exception):
    """An expected, client-facing failure of the identity core.

    Errors are distinguished by ``code`` rather than by subclass. The status
    defaults to the code's usual HTTP status and may be overridden where the
    same code maps to different statuses (``OVER_LIMIT`` is 405 on OTP
    requests and 403 elsewhere).
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code or DEFAULT_STATUS[code]

    def to_payload(self) -> dict[str, str]:
        """Return the response envelope for this error."""
        return {"message": self.message, "error": self.code.value}

    def __repr__(self) -> str:
        return f"AuthError(code={self.code.value!r}, status_code={self.status_code})"
