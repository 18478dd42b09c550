"""Hand-off point between OTP issuance and the SMS provider."""
from __future__ import annotations

import logging
from typing import Protocol

from phone_auth.core.phone import mask_phone

logger = logging.getLogger(__name__)


class OtpDelivery(Protocol):
    """Anything able to get a code to the owner of ``phone``."""

    async def send(self, phone: str, otp: str) -> None: ...


class LoggingOtpDelivery:
    """Default delivery that only records that a code went out.

    The code itself is never logged; wire a real SMS provider in production.
    """

    async def send(self, phone: str, otp: str) -> None:
        logger.info("OTP ready for delivery to phone %s", mask_phone(phone))
