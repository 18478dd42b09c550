# src/phone_auth/services/__init__.py
"""Business logic services for the phone-auth application."""

from .auth_flow import AuthFlowOrchestrator, AuthSession
from .otp_delivery import LoggingOtpDelivery, OtpDelivery
from .otp_engine import OtpChallengeEngine, OtpIssue, OtpVerification
from .token_manager import SessionResult, SessionTokenManager, TokenPair

__all__ = [
    "AuthFlowOrchestrator",
    "AuthSession",
    "LoggingOtpDelivery",
    "OtpDelivery",
    "OtpChallengeEngine",
    "OtpIssue",
    "OtpVerification",
    "SessionResult",
    "SessionTokenManager",
    "TokenPair",
]
