"""Runtime configuration for the phone-auth service.

Every knob of the OTP and session policy is an environment variable (or a
`.env` entry); the defaults reproduce the production policy.
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """OTP, token, cookie and database settings.

    Services receive an instance explicitly so tests can swap in their own.
    """

    # Service identity
    app_name: str = Field(default="Phone Auth", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Storage (any SQLAlchemy async driver URL)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./phone_auth.db",
        alias="DATABASE_URL",
    )
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # JWT session settings
    access_token_secret: str = Field(
        default="dev-access-secret-change-me",
        alias="ACCESS_TOKEN_SECRET",
    )
    refresh_token_secret: str = Field(
        default="dev-refresh-secret-change-me",
        alias="REFRESH_TOKEN_SECRET",
    )
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=15,
        ge=1,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    refresh_token_expire_days: int = Field(
        default=7,
        ge=7,
        le=30,
        alias="REFRESH_TOKEN_EXPIRE_DAYS",
    )

    # OTP challenge policy
    otp_daily_limit: int = Field(default=3, alias="OTP_DAILY_LIMIT")
    otp_error_limit: int = Field(default=5, alias="OTP_ERROR_LIMIT")
    otp_verify_window_minutes: int = Field(default=2, alias="OTP_VERIFY_WINDOW_MINUTES")
    otp_confirm_window_minutes: int = Field(default=8, alias="OTP_CONFIRM_WINDOW_MINUTES")

    # Login lockout policy
    login_error_limit: int = Field(default=3, alias="LOGIN_ERROR_LIMIT")

    # Daily counters reset on calendar day boundaries of this zone
    calendar_timezone: str = Field(default="UTC", alias="CALENDAR_TIMEZONE")

    # Password/OTP hashing cost
    bcrypt_rounds: int = Field(default=10, ge=4, le=31, alias="BCRYPT_ROUNDS")

    # Session cookies
    access_cookie_name: str = Field(default="accessToken", alias="ACCESS_COOKIE_NAME")
    refresh_cookie_name: str = Field(default="refreshToken", alias="REFRESH_COOKIE_NAME")
    cookie_secure: bool = Field(default=False, alias="COOKIE_SECURE")
    cookie_samesite: str = Field(default="strict", alias="COOKIE_SAMESITE")

    # Per-IP request throttling (limits syntax, e.g. "5/minute")
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_default: str = Field(default="60/minute", alias="RATE_LIMIT_DEFAULT")
    rate_limit_otp: str = Field(default="5/minute", alias="RATE_LIMIT_OTP")
    rate_limit_auth: str = Field(default="10/minute", alias="RATE_LIMIT_AUTH")

    # Response hardening headers
    hsts_enabled: bool = Field(default=True, alias="HSTS_ENABLED")
    hsts_max_age: int = Field(default=15552000, ge=0, alias="HSTS_MAX_AGE")

    # Browser clients calling from another origin
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("calendar_timezone")
    @classmethod
    def validate_calendar_timezone(cls, v: str) -> str:
        """Reject zone names the tz database does not know."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as err:
            raise ValueError(f"Unknown time zone: {v}") from err
        return v

    @property
    def refresh_cookie_max_age(self) -> int:
        """Lifetime of the refresh cookie in seconds."""
        return self.refresh_token_expire_days * 24 * 60 * 60

    @property
    def access_cookie_max_age(self) -> int:
        """Lifetime of the access cookie in seconds."""
        return self.access_token_expire_minutes * 60


settings = Settings()
