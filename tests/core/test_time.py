# tests/core/test_time.py
"""Tests for calendar-day and window helpers."""

from datetime import UTC, datetime, timedelta

from phone_auth.db.time import as_utc, is_older_than, same_calendar_day


def test_same_calendar_day_in_utc():
    morning = datetime(2024, 5, 14, 0, 5, tzinfo=UTC)
    assert same_calendar_day(morning, morning + timedelta(hours=23))
    assert not same_calendar_day(morning, morning + timedelta(days=1))


def test_calendar_day_follows_configured_zone():
    # 17:00 UTC is already the next day in Asia/Yangon (UTC+06:30).
    first = datetime(2024, 5, 14, 16, 0, tzinfo=UTC)
    second = datetime(2024, 5, 14, 18, 0, tzinfo=UTC)
    assert same_calendar_day(first, second, "UTC")
    assert not same_calendar_day(first, second, "Asia/Yangon")


def test_naive_values_are_treated_as_utc():
    naive = datetime(2024, 5, 14, 9, 30)
    assert as_utc(naive) == datetime(2024, 5, 14, 9, 30, tzinfo=UTC)


def test_window_boundary_is_fresh():
    stamp = datetime(2024, 5, 14, 9, 30, tzinfo=UTC)
    window = timedelta(minutes=2)
    assert not is_older_than(stamp, stamp + window, window)
    assert is_older_than(stamp, stamp + window + timedelta(seconds=1), window)
