# tests/services/test_otp_engine.py
"""Tests for the registration OTP state machine."""

from datetime import UTC, datetime

import pytest

from phone_auth.core.errors import AuthError, ErrorCode
from phone_auth.core.security import hash_secret
from phone_auth.models import ChallengeState
from phone_auth.services.otp_engine import OtpChallengeEngine
from tests.conftest import TEST_PHONE


def _wrong(otp: str) -> str:
    return f"{(int(otp) + 1) % 1_000_000:06d}"


@pytest.fixture()
def otp_engine(store, test_settings, clock):
    return OtpChallengeEngine(store, test_settings, clock)


class TestRequest:
    """Issuing OTP challenges and the daily request quota."""

    @pytest.mark.asyncio
    async def test_first_request_creates_challenge(self, otp_engine, store):
        issue = await otp_engine.request(TEST_PHONE)

        assert issue.count == 1
        assert len(issue.otp) == 6
        challenge = await store.find_challenge_by_phone(TEST_PHONE)
        assert challenge is not None
        assert challenge.state is ChallengeState.REQUESTED
        assert challenge.remember_token == issue.remember_token
        assert challenge.otp_hash != issue.otp

    @pytest.mark.asyncio
    async def test_fourth_request_same_day_is_over_limit(self, otp_engine, store):
        counts = [(await otp_engine.request(TEST_PHONE)).count for _ in range(3)]
        assert counts == [1, 2, 3]

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.request(TEST_PHONE)
        assert exc_info.value.code is ErrorCode.OVER_LIMIT
        assert exc_info.value.status_code == 405

        challenge = await store.find_challenge_by_phone(TEST_PHONE)
        assert challenge.count == 3

    @pytest.mark.asyncio
    async def test_quota_resets_on_next_calendar_day(self, otp_engine, clock):
        for _ in range(3):
            await otp_engine.request(TEST_PHONE)

        clock.advance(days=1)
        issue = await otp_engine.request(TEST_PHONE)
        assert issue.count == 1

    @pytest.mark.asyncio
    async def test_each_request_rotates_remember_token(self, otp_engine):
        first = await otp_engine.request(TEST_PHONE)
        second = await otp_engine.request(TEST_PHONE)
        assert first.remember_token != second.remember_token

    @pytest.mark.asyncio
    async def test_registered_phone_is_rejected(self, otp_engine, store):
        await store.create_account(phone=TEST_PHONE, password_hash=hash_secret("secret123", 4))

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.request(TEST_PHONE)
        assert exc_info.value.code is ErrorCode.USER_EXISTS
        assert exc_info.value.status_code == 409


class TestVerify:
    """Checking OTP codes against the pending challenge."""

    @pytest.mark.asyncio
    async def test_success_mints_verify_token(self, otp_engine, store):
        issue = await otp_engine.request(TEST_PHONE)
        verification = await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)

        challenge = await store.find_challenge_by_phone(TEST_PHONE)
        assert challenge.state is ChallengeState.VERIFIED
        assert challenge.verify_token == verification.verify_token
        assert challenge.error_count == 0
        assert challenge.count == 1

    @pytest.mark.asyncio
    async def test_without_request_is_not_found(self, otp_engine):
        with pytest.raises(AuthError) as exc_info:
            await otp_engine.verify(TEST_PHONE, "123456", "token")
        assert exc_info.value.code is ErrorCode.OTP_NOT_FOUND

    @pytest.mark.asyncio
    async def test_wrong_otp_counts_errors(self, otp_engine, store):
        issue = await otp_engine.request(TEST_PHONE)

        for expected in (1, 2):
            with pytest.raises(AuthError) as exc_info:
                await otp_engine.verify(TEST_PHONE, _wrong(issue.otp), issue.remember_token)
            assert exc_info.value.code is ErrorCode.INVALID_OTP
            challenge = await store.find_challenge_by_phone(TEST_PHONE)
            assert challenge.error_count == expected

    @pytest.mark.asyncio
    async def test_error_limit_blocks_further_attempts(self, otp_engine):
        issue = await otp_engine.request(TEST_PHONE)
        for _ in range(5):
            with pytest.raises(AuthError):
                await otp_engine.verify(TEST_PHONE, _wrong(issue.otp), issue.remember_token)

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)
        assert exc_info.value.code is ErrorCode.OVER_LIMIT
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_wrong_remember_token_locks_out(self, otp_engine, store):
        issue = await otp_engine.request(TEST_PHONE)

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.verify(TEST_PHONE, issue.otp, "forged")
        assert exc_info.value.code is ErrorCode.INVALID_TOKEN
        challenge = await store.find_challenge_by_phone(TEST_PHONE)
        assert challenge.error_count == 5

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)
        assert exc_info.value.code is ErrorCode.OVER_LIMIT

    @pytest.mark.asyncio
    async def test_wrong_remember_token_after_wrong_otps_sets_exact_limit(
        self, otp_engine, store
    ):
        issue = await otp_engine.request(TEST_PHONE)
        for _ in range(3):
            with pytest.raises(AuthError):
                await otp_engine.verify(TEST_PHONE, _wrong(issue.otp), issue.remember_token)
        challenge = await store.find_challenge_by_phone(TEST_PHONE)
        assert challenge.error_count == 3

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.verify(TEST_PHONE, issue.otp, "forged")
        assert exc_info.value.code is ErrorCode.INVALID_TOKEN
        assert challenge.error_count == 5

    @pytest.mark.asyncio
    async def test_wrong_otp_count_restarts_across_midnight(self, otp_engine, store, clock):
        clock.current = datetime(2024, 5, 14, 23, 59, 0, tzinfo=UTC)
        issue = await otp_engine.request(TEST_PHONE)
        wrong = _wrong(issue.otp)

        for stamp in (20, 40):
            clock.current = datetime(2024, 5, 14, 23, 59, stamp, tzinfo=UTC)
            with pytest.raises(AuthError):
                await otp_engine.verify(TEST_PHONE, wrong, issue.remember_token)
        challenge = await store.find_challenge_by_phone(TEST_PHONE)
        assert challenge.error_count == 2

        clock.current = datetime(2024, 5, 15, 0, 0, 30, tzinfo=UTC)
        with pytest.raises(AuthError) as exc_info:
            await otp_engine.verify(TEST_PHONE, wrong, issue.remember_token)
        assert exc_info.value.code is ErrorCode.INVALID_OTP
        assert challenge.error_count == 1

    @pytest.mark.asyncio
    async def test_lockout_lifts_next_day(self, otp_engine, clock):
        issue = await otp_engine.request(TEST_PHONE)
        with pytest.raises(AuthError):
            await otp_engine.verify(TEST_PHONE, issue.otp, "forged")

        clock.advance(days=1)
        fresh = await otp_engine.request(TEST_PHONE)
        verification = await otp_engine.verify(TEST_PHONE, fresh.otp, fresh.remember_token)
        assert verification.verify_token

    @pytest.mark.asyncio
    async def test_window_boundary_is_inclusive(self, otp_engine, clock):
        issue = await otp_engine.request(TEST_PHONE)
        clock.advance(minutes=2)
        verification = await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)
        assert verification.phone == TEST_PHONE

    @pytest.mark.asyncio
    async def test_expired_after_window(self, otp_engine, clock):
        issue = await otp_engine.request(TEST_PHONE)
        clock.advance(minutes=2, seconds=1)
        with pytest.raises(AuthError) as exc_info:
            await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)
        assert exc_info.value.code is ErrorCode.OTP_EXPIRED

    @pytest.mark.asyncio
    async def test_already_verified(self, otp_engine):
        issue = await otp_engine.request(TEST_PHONE)
        await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)
        assert exc_info.value.code is ErrorCode.ALREADY_VERIFIED

    @pytest.mark.asyncio
    async def test_new_request_after_verify_starts_over(self, otp_engine, store):
        issue = await otp_engine.request(TEST_PHONE)
        await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)

        await otp_engine.request(TEST_PHONE)
        challenge = await store.find_challenge_by_phone(TEST_PHONE)
        assert challenge.state is ChallengeState.REQUESTED
        assert challenge.verify_token is None


class TestConsume:
    """Spending the verify token."""

    @pytest.mark.asyncio
    async def test_consume_within_window(self, otp_engine, clock):
        issue = await otp_engine.request(TEST_PHONE)
        verification = await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)

        clock.advance(minutes=8)
        challenge = await otp_engine.consume(TEST_PHONE, verification.verify_token)
        assert challenge.state is ChallengeState.CONSUMED
        assert challenge.verify_token is None

    @pytest.mark.asyncio
    async def test_consume_after_window_expires(self, otp_engine, clock):
        issue = await otp_engine.request(TEST_PHONE)
        verification = await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)

        clock.advance(minutes=8, seconds=1)
        with pytest.raises(AuthError) as exc_info:
            await otp_engine.consume(TEST_PHONE, verification.verify_token)
        assert exc_info.value.code is ErrorCode.OTP_EXPIRED
        assert exc_info.value.message == "Your request has expired"

    @pytest.mark.asyncio
    async def test_replayed_verify_token_is_rejected(self, otp_engine):
        issue = await otp_engine.request(TEST_PHONE)
        verification = await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)
        await otp_engine.consume(TEST_PHONE, verification.verify_token)

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.consume(TEST_PHONE, verification.verify_token)
        assert exc_info.value.code is ErrorCode.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_wrong_verify_token_locks_out(self, otp_engine, store):
        issue = await otp_engine.request(TEST_PHONE)
        verification = await otp_engine.verify(TEST_PHONE, issue.otp, issue.remember_token)

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.consume(TEST_PHONE, "forged")
        assert exc_info.value.code is ErrorCode.INVALID_TOKEN

        with pytest.raises(AuthError) as exc_info:
            await otp_engine.consume(TEST_PHONE, verification.verify_token)
        assert exc_info.value.code is ErrorCode.OVER_LIMIT

    @pytest.mark.asyncio
    async def test_consume_before_verify_is_rejected(self, otp_engine):
        await otp_engine.request(TEST_PHONE)
        with pytest.raises(AuthError) as exc_info:
            await otp_engine.consume(TEST_PHONE, "anything")
        assert exc_info.value.code is ErrorCode.INVALID_TOKEN
