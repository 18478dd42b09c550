"""Authentication-related Pydantic schemas."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PHONE_PATTERN = r"^[0-9]+$"
OTP_PATTERN = r"^[0-9]{6}$"
PASSWORD_CHARSET = re.compile(r"^[A-Za-z\d@$!%*#?&]+$")
PASSWORD_RULE = "Password must be at least 8 characters with letters and numbers"


def _check_password(value: str) -> str:
    if (
        not PASSWORD_CHARSET.match(value)
        or not re.search(r"[A-Za-z]", value)
        or not re.search(r"\d", value)
    ):
        raise ValueError(PASSWORD_RULE)
    return value


class PhoneRequest(BaseModel):
    """Base for payloads that identify the caller by phone number."""

    model_config = ConfigDict(str_strip_whitespace=True)

    phone: str = Field(
        ...,
        min_length=5,
        max_length=12,
        pattern=PHONE_PATTERN,
        description="Digits only; a leading 09 prefix is stripped server-side",
    )


class RegisterRequest(PhoneRequest):
    """Request an OTP for a new phone number."""


class OtpRequestResponse(BaseModel):
    """Returned after an OTP was issued; ``token`` is the remember token."""

    message: str
    phone: str
    token: str = Field(..., description="Remember token proving this registration attempt")


class VerifyOtpRequest(PhoneRequest):
    """Submit the received OTP together with the remember token."""

    otp: str = Field(..., pattern=OTP_PATTERN, description="6 digit code")
    token: str = Field(..., min_length=1, max_length=128, description="Remember token")


class VerifyOtpResponse(BaseModel):
    """Returned after a correct OTP; ``token`` is the verify token."""

    message: str
    phone: str
    token: str = Field(..., description="Verify token authorising account creation")


class ConfirmPasswordRequest(PhoneRequest):
    """Choose the account password using the verify token."""

    password: str = Field(..., min_length=8, max_length=64)
    token: str = Field(..., min_length=1, max_length=128, description="Verify token")

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Require letters and digits from the allowed character set."""
        return _check_password(v)


class LoginRequest(PhoneRequest):
    """Phone and password credentials."""

    password: str = Field(..., min_length=8, max_length=64)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Require letters and digits from the allowed character set."""
        return _check_password(v)


class ChangePasswordRequest(BaseModel):
    """Replace the current password."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    old_password: str = Field(..., alias="oldPassword", min_length=8, max_length=64)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=64)
    confirm_password: str = Field(..., alias="confirmPassword", min_length=1, max_length=64)

    @field_validator("old_password", "new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Require letters and digits from the allowed character set."""
        return _check_password(v)

    @model_validator(mode="after")
    def check_new_password(self) -> "ChangePasswordRequest":
        """New password must differ from the old one and match its confirmation."""
        if self.new_password == self.old_password:
            raise ValueError("New password must be different from old password")
        if self.confirm_password != self.new_password:
            raise ValueError("Passwords do not match")
        return self


class AccountSummary(BaseModel):
    """Public identity of an account."""

    id: int
    phone: str

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """Returned when a session is opened; tokens travel as cookies."""

    message: str
    user: AccountSummary


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class ProfileResponse(BaseModel):
    """The authenticated account."""

    id: int
    phone: str
    role: str
    status: str

    model_config = ConfigDict(from_attributes=True)
