"""Data access helpers for accounts and OTP challenges."""
from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from phone_auth.db.time import Clock, utcnow
from phone_auth.models.account import Account
from phone_auth.models.otp_challenge import OtpChallenge

__all__ = ["CredentialStore"]

_UPSERT_DIALECTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class CredentialStore:
    """Single-row CRUD over ``Account`` and ``OtpChallenge``.

    Every write commits immediately and stamps ``updated_at`` from the
    injected clock, which the daily-quota and freshness checks rely on.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utcnow) -> None:
        """Initialize the store with an async SQLAlchemy session."""
        self.session = session
        self.clock = clock

    async def find_account_by_phone(self, phone: str) -> Account | None:
        """Return the account registered for ``phone``."""
        result = await self.session.execute(select(Account).where(Account.phone == phone))
        return result.scalars().first()

    async def find_account_by_id(self, account_id: int) -> Account | None:
        """Return an account by identifier."""
        return await self.session.get(Account, account_id)

    async def create_account(self, *, phone: str, password_hash: str, **fields: Any) -> Account:
        """Insert a new account and return the persisted ORM instance."""
        now = self.clock()
        account = Account(
            phone=phone,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.session.add(account)
        await self.session.commit()
        return account

    async def update_account(self, account: Account, **fields: Any) -> Account:
        """Apply ``fields`` to ``account`` and persist them."""
        for key, value in fields.items():
            setattr(account, key, value)
        account.updated_at = self.clock()
        await self.session.commit()
        return account

    async def find_challenge_by_phone(self, phone: str) -> OtpChallenge | None:
        """Return the challenge row for ``phone``."""
        result = await self.session.execute(
            select(OtpChallenge).where(OtpChallenge.phone == phone)
        )
        return result.scalars().first()

    async def upsert_challenge(self, phone: str, **fields: Any) -> OtpChallenge:
        """Create or overwrite the challenge for ``phone`` in one statement.

        The write is a single ``INSERT ... ON CONFLICT (phone) DO UPDATE`` so
        concurrent first requests for the same phone converge on one row.
        """
        now = self.clock()
        values = {**fields, "updated_at": now}
        dialect = self.session.get_bind().dialect.name
        insert_factory = _UPSERT_DIALECTS.get(dialect)
        if insert_factory is None:
            raise RuntimeError(f"Atomic upsert is not supported on dialect {dialect!r}")

        stmt = insert_factory(OtpChallenge).values(phone=phone, created_at=now, **values)
        stmt = stmt.on_conflict_do_update(index_elements=[OtpChallenge.phone], set_=values)
        await self.session.execute(stmt)
        await self.session.commit()

        result = await self.session.execute(
            select(OtpChallenge)
            .where(OtpChallenge.phone == phone)
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()

    async def update_challenge(self, challenge: OtpChallenge, **fields: Any) -> OtpChallenge:
        """Apply ``fields`` to ``challenge`` and persist them.

        ``updated_at`` is stamped from the clock unless ``fields`` carries one,
        which is how an undone write restores the previous stamp.
        """
        challenge.updated_at = self.clock()
        for key, value in fields.items():
            setattr(challenge, key, value)
        await self.session.commit()
        return challenge
