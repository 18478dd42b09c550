# src/phone_auth/services/token_manager.py
"""Access/refresh JWT issuance, silent rotation and revocation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from phone_auth.core.errors import AuthError, ErrorCode
from phone_auth.core.security import generate_opaque_token, tokens_match
from phone_auth.core.settings import Settings, settings as default_settings
from phone_auth.db.time import Clock, as_utc
from phone_auth.models.account import Account
from phone_auth.repositories.credential_store import CredentialStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPair:
    """A freshly minted access/refresh token pair."""

    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims extracted from a session token."""

    account_id: int
    phone: str
    token_type: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionResult:
    """Outcome of the per-request session gate.

    ``rotated`` is True when a new pair was minted; the HTTP layer must then
    hand both tokens back to the client.
    """

    account_id: int
    access_token: str
    refresh_token: str | None
    rotated: bool = False


class SessionTokenManager:
    """Mint, verify and rotate session tokens for a single-session account."""

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings = default_settings,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock or store.clock

    def _secret_for(self, token_type: str) -> str:
        if token_type == ACCESS_TOKEN_TYPE:
            return self.settings.access_token_secret
        return self.settings.refresh_token_secret

    def _encode(self, account: Account, token_type: str, lifetime: timedelta) -> str:
        now = as_utc(self.clock())
        to_encode: dict[str, object] = {
            "sub": str(account.id),
            "phone": account.phone,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
            # Keeps tokens minted within the same second distinct.
            "jti": generate_opaque_token(),
        }
        encoded_jwt: str = jwt.encode(
            to_encode,
            self._secret_for(token_type),
            algorithm=self.settings.jwt_algorithm,
        )
        return encoded_jwt

    def issue_pair(self, account: Account) -> TokenPair:
        """Sign a new access/refresh pair for ``account`` without persisting it."""
        access = self._encode(
            account,
            ACCESS_TOKEN_TYPE,
            timedelta(minutes=self.settings.access_token_expire_minutes),
        )
        refresh = self._encode(
            account,
            REFRESH_TOKEN_TYPE,
            timedelta(days=self.settings.refresh_token_expire_days),
        )
        return TokenPair(access_token=access, refresh_token=refresh)

    async def start_session(self, account: Account, **account_fields: object) -> TokenPair:
        """Issue a pair and anchor the refresh token on the account.

        Any refresh token issued earlier stops working immediately.
        """
        pair = self.issue_pair(account)
        await self.store.update_account(
            account,
            refresh_token=pair.refresh_token,
            **account_fields,
        )
        return pair

    def decode(self, token: str, token_type: str) -> TokenClaims:
        """Verify signature, expiry and type of ``token``.

        Expiry is judged against the injected clock.

        Raises:
            ExpiredSignatureError: If the token is past its ``exp``.
            JWTError: For any other signature or claim problem.
        """
        payload = jwt.decode(
            token,
            self._secret_for(token_type),
            algorithms=[self.settings.jwt_algorithm],
            options={"verify_exp": False},
        )

        exp = payload.get("exp")
        if not isinstance(exp, int):
            raise JWTClaimsError("Token has no expiry")
        if exp < int(as_utc(self.clock()).timestamp()):
            raise ExpiredSignatureError("Signature has expired.")

        if payload.get("type") != token_type:
            raise JWTClaimsError(f"Expected a {token_type} token")

        subject = payload.get("sub")
        phone = payload.get("phone")
        if not subject or not isinstance(phone, str) or not phone:
            raise JWTClaimsError("Invalid token payload")
        try:
            account_id = int(subject)
        except (TypeError, ValueError) as err:
            raise JWTClaimsError("Invalid token subject") from err

        return TokenClaims(
            account_id=account_id,
            phone=phone,
            token_type=token_type,
            expires_at=datetime.fromtimestamp(exp, UTC),
        )

    def decode_access(self, token: str) -> TokenClaims:
        """Decode an access token."""
        return self.decode(token, ACCESS_TOKEN_TYPE)

    def decode_refresh(self, token: str) -> TokenClaims:
        """Decode a refresh token."""
        return self.decode(token, REFRESH_TOKEN_TYPE)

    async def refresh_or_validate(
        self,
        access_token: str | None,
        refresh_token: str | None,
    ) -> SessionResult:
        """Authenticate a protected request, rotating the pair when needed.

        1. A valid access token is accepted as is. A malformed or forged one
           is rejected outright; only plain expiry falls through.
        2. Otherwise a valid refresh token is required.
        3. Its account must still exist, with matching phone and with this exact
           token stored as the session anchor.
        4. A new pair is minted and anchored, retiring the presented token.

        Raises:
            AuthError: ``INVALID_TOKEN`` for a bad access token,
                ``UNAUTHORIZED`` for any refresh failure.
        """
        if access_token:
            try:
                claims = self.decode_access(access_token)
            except ExpiredSignatureError:
                logger.debug("Access token expired; attempting refresh")
            except JWTError as err:
                raise AuthError(ErrorCode.INVALID_TOKEN, "Invalid access token") from err
            else:
                return SessionResult(
                    account_id=claims.account_id,
                    access_token=access_token,
                    refresh_token=refresh_token,
                )

        if not refresh_token:
            raise AuthError(ErrorCode.UNAUTHORIZED, "You are not authenticated")

        try:
            claims = self.decode_refresh(refresh_token)
        except JWTError as err:
            raise AuthError(ErrorCode.UNAUTHORIZED, "Invalid refresh token") from err

        account = await self.store.find_account_by_id(claims.account_id)
        if (
            account is None
            or account.phone != claims.phone
            or not tokens_match(account.refresh_token, refresh_token)
        ):
            logger.warning("Rejected stale or unknown refresh token for account %d", claims.account_id)
            raise AuthError(ErrorCode.UNAUTHORIZED, "Invalid refresh token")

        pair = await self.start_session(account)
        logger.info("Rotated session tokens for account %d", account.id)
        return SessionResult(
            account_id=account.id,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            rotated=True,
        )

    async def revoke(self, refresh_token: str | None) -> Account:
        """Invalidate the session anchored by ``refresh_token`` (logout).

        The anchor is overwritten with an unlinked opaque value so no refresh
        token issued so far can pass the anchor check again.
        """
        if not refresh_token:
            raise AuthError(ErrorCode.UNAUTHORIZED, "You are not authenticated")

        try:
            claims = self.decode_refresh(refresh_token)
        except JWTError as err:
            raise AuthError(ErrorCode.UNAUTHORIZED, "Invalid or expired token") from err

        account = await self.store.find_account_by_id(claims.account_id)
        if account is None or account.phone != claims.phone:
            raise AuthError(ErrorCode.UNAUTHORIZED, "Invalid token")

        await self.store.update_account(account, refresh_token=generate_opaque_token())
        logger.info("Session revoked for account %d", account.id)
        return account
