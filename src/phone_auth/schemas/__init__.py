"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .auth import (
    ChangePasswordRequest,
    ConfirmPasswordRequest,
    LoginRequest,
    RegisterRequest,
    SessionResponse,
    VerifyOtpRequest,
)

__all__ = [
    "ChangePasswordRequest", "ConfirmPasswordRequest",
    "LoginRequest", "RegisterRequest",
    "SessionResponse", "VerifyOtpRequest",
]
