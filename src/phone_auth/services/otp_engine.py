# src/phone_auth/services/otp_engine.py
"""Registration OTP state machine: issue, verify and consume challenges.

Every transition re-derives "same calendar day" and window freshness from the
row's ``updated_at``; nothing is scheduled, so quotas and expiries are
evaluated lazily at request time against the injected clock.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from phone_auth.core.errors import AuthError, ErrorCode
from phone_auth.core.phone import mask_phone
from phone_auth.core.security import (
    generate_opaque_token,
    generate_otp,
    hash_secret,
    tokens_match,
    verify_secret,
)
from phone_auth.core.settings import Settings, settings as default_settings
from phone_auth.db.time import Clock, is_older_than, same_calendar_day
from phone_auth.models.otp_challenge import ChallengeState, OtpChallenge
from phone_auth.repositories.credential_store import CredentialStore

logger = logging.getLogger(__name__)

OTP_REQUEST_OVER_LIMIT_STATUS = 405

# Columns an OTP request overwrites; restored when delivery fails.
_REQUEST_FIELDS = (
    "otp_hash",
    "remember_token",
    "verify_token",
    "consumed_at",
    "count",
    "error_count",
    "updated_at",
)

Deliver = Callable[[str, str], Awaitable[None]]


@dataclass(frozen=True)
class OtpIssue:
    """Outcome of an OTP request; ``otp`` is only for the delivery channel."""

    phone: str
    remember_token: str
    count: int
    otp: str = field(repr=False)


@dataclass(frozen=True)
class OtpVerification:
    """Outcome of a successful OTP verification."""

    phone: str
    verify_token: str


class OtpChallengeEngine:
    """Owns the ``NONE -> REQUESTED -> VERIFIED -> CONSUMED`` flow per phone."""

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings = default_settings,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock or store.clock

    def _same_day(self, challenge: OtpChallenge) -> bool:
        return same_calendar_day(
            challenge.updated_at,
            self.clock(),
            self.settings.calendar_timezone,
        )

    def _is_locked_out(self, challenge: OtpChallenge) -> bool:
        return self._same_day(challenge) and challenge.error_count >= self.settings.otp_error_limit

    async def _ensure_unregistered(self, phone: str) -> None:
        if await self.store.find_account_by_phone(phone) is not None:
            raise AuthError(ErrorCode.USER_EXISTS, "Phone number is already registered")

    async def _require_challenge(self, phone: str) -> OtpChallenge:
        challenge = await self.store.find_challenge_by_phone(phone)
        if challenge is None:
            raise AuthError(ErrorCode.OTP_NOT_FOUND, "OTP was not requested for this phone")
        return challenge

    async def _undo_request(
        self,
        challenge: OtpChallenge,
        previous: dict[str, Any] | None,
    ) -> None:
        if previous is None:
            # Nothing was stored before: leave a row nobody can verify.
            await self.store.update_challenge(
                challenge,
                remember_token=generate_opaque_token(),
                count=0,
                error_count=0,
            )
        else:
            await self.store.update_challenge(challenge, **previous)
        logger.warning(
            "OTP delivery failed for phone %s; request not counted",
            mask_phone(challenge.phone),
        )

    async def _lockout(self, challenge: OtpChallenge) -> None:
        challenge.lockout(self.settings.otp_error_limit)
        await self.store.update_challenge(challenge)
        logger.warning("OTP challenge locked out for phone %s", mask_phone(challenge.phone))

    async def request(self, phone: str, deliver: Deliver | None = None) -> OtpIssue:
        """Issue a fresh OTP and remember token for ``phone``.

        When ``deliver`` is given it is awaited with the phone and plain code
        after the write. If it raises, the challenge is put back the way it
        was, so an undelivered code neither counts against the daily quota
        nor replaces a code the user already received.

        Raises:
            AuthError: ``USER_EXISTS`` if the phone is registered, ``OVER_LIMIT``
                (405) once today's request quota is spent.
        """
        await self._ensure_unregistered(phone)

        existing = await self.store.find_challenge_by_phone(phone)
        previous = _snapshot(existing)
        same_day = existing is not None and self._same_day(existing)
        if same_day and existing.count >= self.settings.otp_daily_limit:
            raise AuthError(
                ErrorCode.OVER_LIMIT,
                f"OTP is allowed to request {self.settings.otp_daily_limit} times per day",
                OTP_REQUEST_OVER_LIMIT_STATUS,
            )

        otp = generate_otp()
        remember_token = generate_opaque_token()
        fields = {
            "otp_hash": hash_secret(otp, self.settings.bcrypt_rounds),
            "remember_token": remember_token,
            "verify_token": None,
            "consumed_at": None,
        }

        if existing is None:
            challenge = await self.store.upsert_challenge(
                phone, count=1, error_count=0, **fields
            )
        elif not same_day:
            challenge = await self.store.update_challenge(
                existing, count=1, error_count=0, **fields
            )
        else:
            challenge = await self.store.update_challenge(
                existing, count=existing.count + 1, **fields
            )

        if deliver is not None:
            try:
                await deliver(challenge.phone, otp)
            except Exception:
                await self._undo_request(challenge, previous)
                raise

        logger.info(
            "OTP issued for phone %s (request %d today)",
            mask_phone(phone),
            challenge.count,
        )
        return OtpIssue(
            phone=challenge.phone,
            remember_token=remember_token,
            count=challenge.count,
            otp=otp,
        )

    async def verify(self, phone: str, otp: str, remember_token: str) -> OtpVerification:
        """Check ``otp`` against the pending challenge and mint a verify token.

        Raises:
            AuthError: see the checks below, evaluated in order.
        """
        await self._ensure_unregistered(phone)
        challenge = await self._require_challenge(phone)

        if challenge.state is not ChallengeState.REQUESTED:
            raise AuthError(ErrorCode.ALREADY_VERIFIED, "OTP is already verified")

        same_day = self._same_day(challenge)
        if self._is_locked_out(challenge):
            raise AuthError(ErrorCode.OVER_LIMIT, "Too many failed attempts")

        if not tokens_match(challenge.remember_token, remember_token):
            await self._lockout(challenge)
            raise AuthError(ErrorCode.INVALID_TOKEN, "Invalid token")

        window = timedelta(minutes=self.settings.otp_verify_window_minutes)
        if is_older_than(challenge.updated_at, self.clock(), window):
            raise AuthError(ErrorCode.OTP_EXPIRED, "OTP is expired")

        if not verify_secret(otp, challenge.otp_hash):
            error_count = challenge.error_count + 1 if same_day else 1
            await self.store.update_challenge(challenge, error_count=error_count)
            logger.info(
                "Wrong OTP for phone %s (%d errors today)",
                mask_phone(phone),
                error_count,
            )
            raise AuthError(ErrorCode.INVALID_OTP, "OTP is incorrect")

        verify_token = generate_opaque_token()
        await self.store.update_challenge(
            challenge,
            verify_token=verify_token,
            error_count=0,
            count=1,
        )
        logger.info("OTP verified for phone %s", mask_phone(phone))
        return OtpVerification(phone=challenge.phone, verify_token=verify_token)

    async def consume(self, phone: str, verify_token: str) -> OtpChallenge:
        """Spend the verify token, authorising account creation for ``phone``.

        A consumed challenge has no verify token left, so replaying the old one
        fails the token match like any other forgery.
        """
        await self._ensure_unregistered(phone)
        challenge = await self._require_challenge(phone)

        if self._is_locked_out(challenge):
            raise AuthError(ErrorCode.OVER_LIMIT, "Too many failed attempts")

        if not tokens_match(challenge.verify_token, verify_token):
            await self._lockout(challenge)
            raise AuthError(ErrorCode.INVALID_TOKEN, "Invalid token")

        window = timedelta(minutes=self.settings.otp_confirm_window_minutes)
        now = self.clock()
        if is_older_than(challenge.updated_at, now, window):
            raise AuthError(ErrorCode.OTP_EXPIRED, "Your request has expired")

        return await self.store.update_challenge(challenge, verify_token=None, consumed_at=now)


def _snapshot(challenge: OtpChallenge | None) -> dict[str, Any] | None:
    if challenge is None:
        return None
    return {name: getattr(challenge, name) for name in _REQUEST_FIELDS}
