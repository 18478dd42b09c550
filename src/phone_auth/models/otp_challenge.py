"""SQLAlchemy model for per-phone registration OTP challenges."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from phone_auth.db.session import Base
from phone_auth.db.time import utcnow

OTP_LOCKOUT_ERROR_COUNT = 5


class ChallengeState(str, enum.Enum):
    """Registration progress derived from a challenge row."""

    NONE = "NONE"
    REQUESTED = "REQUESTED"
    VERIFIED = "VERIFIED"
    CONSUMED = "CONSUMED"


class OtpChallenge(Base):
    """The single active registration challenge for a phone number.

    Rows are upserted on every request and never deleted; the next day's
    first request recycles them.
    """

    __tablename__ = "otp_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    otp_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    remember_token: Mapped[str] = mapped_column(String(128), nullable=False)
    verify_token: Mapped[str | None] = mapped_column(String(128), nullable=True)

    count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    @property
    def state(self) -> ChallengeState:
        """Return where this phone is in the registration flow."""
        if self.consumed_at is not None:
            return ChallengeState.CONSUMED
        if self.verify_token is not None:
            return ChallengeState.VERIFIED
        return ChallengeState.REQUESTED

    def lockout(self, error_limit: int = OTP_LOCKOUT_ERROR_COUNT) -> None:
        """Exhaust today's verification attempts immediately."""
        self.error_count = error_limit
