# src/phone_auth/models/__init__.py
"""SQLAlchemy models for the phone-auth service."""

from .account import Account, AccountRole, AccountStatus
from .otp_challenge import ChallengeState, OtpChallenge

__all__ = [
    "Account", "AccountRole", "AccountStatus",
    "ChallengeState", "OtpChallenge",
]
