# src/phone_auth/db/time.py
"""Time utilities for database models and lazy window checks."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read back from stores that drop tzinfo."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def same_calendar_day(first: datetime, second: datetime, tz_name: str = "UTC") -> bool:
    """Return True if both instants fall on the same date in ``tz_name``."""
    zone = ZoneInfo(tz_name)
    return as_utc(first).astimezone(zone).date() == as_utc(second).astimezone(zone).date()


def is_older_than(stamp: datetime, now: datetime, window: timedelta) -> bool:
    """Return True once more than ``window`` has elapsed since ``stamp``.

    The boundary itself still counts as fresh.
    """
    return as_utc(now) - as_utc(stamp) > window
