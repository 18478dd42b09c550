"""SQLAlchemy model for registered phone accounts."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from phone_auth.db.session import Base
from phone_auth.db.time import utcnow


class AccountStatus(str, enum.Enum):
    """Lifecycle status; ``FROZEN`` is only left through manual action."""

    ACTIVE = "ACTIVE"
    FROZEN = "FROZEN"


class AccountRole(str, enum.Enum):
    """Authorization role consulted by role-gated endpoints."""

    USER = "USER"
    AUTHOR = "AUTHOR"
    ADMIN = "ADMIN"


class Account(Base):
    """A phone-verified identity holding one active refresh session."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Raw value of the only refresh token that may rotate the session.
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    error_login_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[AccountStatus] = mapped_column(
        Enum(AccountStatus, name="account_status", native_enum=False),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )
    role: Mapped[AccountRole] = mapped_column(
        Enum(AccountRole, name="account_role", native_enum=False),
        nullable=False,
        default=AccountRole.USER,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    @property
    def is_frozen(self) -> bool:
        """Return True if repeated login failures froze the account."""
        return self.status == AccountStatus.FROZEN
