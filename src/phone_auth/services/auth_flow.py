# src/phone_auth/services/auth_flow.py
"""Registration, login and session flows composed from the OTP engine and token manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NoReturn

from jose import JWTError

from phone_auth.core.errors import AuthError, ErrorCode
from phone_auth.core.phone import mask_phone, normalize_phone
from phone_auth.core.security import hash_secret, verify_secret
from phone_auth.core.settings import Settings, settings as default_settings
from phone_auth.db.time import Clock, same_calendar_day
from phone_auth.models.account import Account, AccountStatus
from phone_auth.repositories.credential_store import CredentialStore
from phone_auth.services.otp_delivery import LoggingOtpDelivery, OtpDelivery
from phone_auth.services.otp_engine import OtpChallengeEngine, OtpIssue, OtpVerification
from phone_auth.services.token_manager import SessionResult, SessionTokenManager, TokenPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    """An authenticated account together with its newly issued tokens."""

    account: Account
    tokens: TokenPair


class AuthFlowOrchestrator:
    """Entry point used by the HTTP layer for every identity operation."""

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings = default_settings,
        delivery: OtpDelivery | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock or store.clock
        self.delivery = delivery or LoggingOtpDelivery()
        self.otp_engine = OtpChallengeEngine(store, settings, self.clock)
        self.token_manager = SessionTokenManager(store, settings, self.clock)

    async def request_otp(self, phone: str) -> OtpIssue:
        """Start (or restart) registration for ``phone`` and dispatch the code.

        A delivery failure propagates and leaves the challenge untouched.
        """
        return await self.otp_engine.request(normalize_phone(phone), self.delivery.send)

    async def verify_otp(self, phone: str, otp: str, remember_token: str) -> OtpVerification:
        """Exchange a correct OTP for a verify token."""
        return await self.otp_engine.verify(normalize_phone(phone), otp, remember_token)

    async def confirm_account(self, phone: str, password: str, verify_token: str) -> AuthSession:
        """Create the account for a verified phone and open its first session."""
        phone = normalize_phone(phone)
        await self.otp_engine.consume(phone, verify_token)

        account = await self.store.create_account(
            phone=phone,
            password_hash=hash_secret(password, self.settings.bcrypt_rounds),
        )
        tokens = await self.token_manager.start_session(account)
        logger.info("Account %d created for phone %s", account.id, mask_phone(phone))
        return AuthSession(account=account, tokens=tokens)

    async def login(self, phone: str, password: str) -> AuthSession:
        """Check credentials and open a new session, retiring any previous one."""
        phone = normalize_phone(phone)
        account = await self.store.find_account_by_phone(phone)
        if account is None:
            raise AuthError(ErrorCode.USER_NOT_FOUND, "User not found")
        if account.is_frozen:
            raise AuthError(ErrorCode.USER_FREEZE, "User is frozen")

        if not verify_secret(password, account.password_hash):
            await self._record_login_failure(account)

        tokens = await self.token_manager.start_session(account, error_login_count=0)
        logger.info("Account %d logged in", account.id)
        return AuthSession(account=account, tokens=tokens)

    async def _record_login_failure(self, account: Account) -> NoReturn:
        """Count a wrong password and freeze the account once over the limit.

        The counter keeps climbing on the freezing attempt, so it ends one above
        the limit.
        """
        same_day = same_calendar_day(
            account.updated_at,
            self.clock(),
            self.settings.calendar_timezone,
        )
        if not same_day:
            await self.store.update_account(account, error_login_count=1)
        elif account.error_login_count >= self.settings.login_error_limit:
            await self.store.update_account(
                account,
                status=AccountStatus.FROZEN,
                error_login_count=account.error_login_count + 1,
            )
            logger.warning("Account %d frozen after repeated login failures", account.id)
            raise AuthError(ErrorCode.OVER_LIMIT, "Too many failed attempts")
        else:
            await self.store.update_account(
                account,
                error_login_count=account.error_login_count + 1,
            )

        logger.info(
            "Login failure %d today for account %d",
            account.error_login_count,
            account.id,
        )
        raise AuthError(ErrorCode.INVALID_PASSWORD, "Wrong password. Please try again")

    async def refresh_or_validate_session(
        self,
        access_token: str | None,
        refresh_token: str | None,
    ) -> SessionResult:
        """Gate for protected requests; may rotate the token pair."""
        return await self.token_manager.refresh_or_validate(access_token, refresh_token)

    async def load_account(self, account_id: int) -> Account:
        """Return the account behind an authenticated request."""
        account = await self.store.find_account_by_id(account_id)
        if account is None:
            raise AuthError(ErrorCode.UNAUTHORIZED, "User not found. Please log in again.")
        return account

    async def logout(self, refresh_token: str | None) -> Account:
        """End the session anchored by ``refresh_token``."""
        return await self.token_manager.revoke(refresh_token)

    async def change_password(
        self,
        access_token: str | None,
        old_password: str,
        new_password: str,
    ) -> Account:
        """Replace the password after re-checking the current one."""
        if not access_token:
            raise AuthError(ErrorCode.UNAUTHORIZED, "Please login to continue")
        try:
            claims = self.token_manager.decode_access(access_token)
        except JWTError as err:
            raise AuthError(ErrorCode.UNAUTHORIZED, "Invalid token") from err

        account = await self.store.find_account_by_id(claims.account_id)
        if account is None:
            raise AuthError(ErrorCode.USER_NOT_FOUND, "User not found")

        if not verify_secret(old_password, account.password_hash):
            raise AuthError(ErrorCode.INVALID_PASSWORD, "Wrong password. Please try again")

        await self.store.update_account(
            account,
            password_hash=hash_secret(new_password, self.settings.bcrypt_rounds),
        )
        logger.info("Password changed for account %d", account.id)
        return account
