"""Phone number helpers."""
from __future__ import annotations

MOBILE_PREFIX = "09"


def normalize_phone(phone: str) -> str:
    """Strip whitespace and the leading mobile prefix from ``phone``."""
    cleaned = phone.strip()
    if cleaned.startswith(MOBILE_PREFIX):
        return cleaned[len(MOBILE_PREFIX):]
    return cleaned


def mask_phone(phone: str) -> str:
    """Return ``phone`` with all but the last three digits hidden, for logs."""
    if len(phone) <= 3:
        return "*" * len(phone)
    return "*" * (len(phone) - 3) + phone[-3:]
