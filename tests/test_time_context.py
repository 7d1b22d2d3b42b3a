"""Tests for zentasks.core.time_context."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from zentasks.core.time_context import (
    get_time_context,
    local_midnight,
    parse_timestamp,
    resolve_timezone,
    to_iso,
)


def _at(hour: int, day: int = 15) -> datetime:
    # 2025-01-15 is a Wednesday, 2025-01-18 a Saturday
    return datetime(2025, 1, day, hour, 30, tzinfo=timezone.utc)


class TestGetTimeContext:
    @pytest.mark.parametrize(
        "hour, expected",
        [
            (0, "early_morning"),
            (8, "early_morning"),
            (9, "morning"),
            (11, "morning"),
            (12, "afternoon"),
            (16, "afternoon"),
            (17, "evening"),
            (19, "evening"),
            (20, "night"),
            (23, "night"),
        ],
    )
    def test_time_of_day_buckets(self, hour, expected):
        assert get_time_context(_at(hour)).time_of_day == expected

    def test_weekday_business_hours(self):
        ctx = get_time_context(_at(10))
        assert ctx.day_of_week == "Wednesday"
        assert ctx.is_weekend is False
        assert ctx.is_business_hours is True

    def test_business_hours_end_at_18(self):
        assert get_time_context(_at(17)).is_business_hours is True
        assert get_time_context(_at(18)).is_business_hours is False
        assert get_time_context(_at(7)).is_business_hours is False

    def test_weekend_is_never_business_hours(self):
        ctx = get_time_context(_at(10, day=18))
        assert ctx.day_of_week == "Saturday"
        assert ctx.is_weekend is True
        assert ctx.is_business_hours is False

    def test_current_time_is_iso(self):
        assert get_time_context(_at(10)).current_time == "2025-01-15T10:30:00+00:00"


class TestTimestamps:
    def test_to_iso_normalizes_to_utc(self):
        local = datetime(2025, 1, 15, 12, 0, tzinfo=ZoneInfo("Asia/Jerusalem"))
        assert to_iso(local) == "2025-01-15T10:00:00.000000+00:00"

    def test_to_iso_treats_naive_as_utc(self):
        assert to_iso(datetime(2025, 1, 15, 10, 0)) == "2025-01-15T10:00:00.000000+00:00"

    def test_to_iso_sorts_like_time(self):
        earlier = datetime(2025, 1, 15, 10, 0, 0, 5, tzinfo=timezone.utc)
        later = earlier + timedelta(microseconds=1)
        assert to_iso(earlier) < to_iso(later)

    def test_parse_round_trip(self):
        dt = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert parse_timestamp(to_iso(dt)) == dt

    def test_parse_naive_is_utc(self):
        assert parse_timestamp("2025-01-15T10:00:00").tzinfo is not None

    @pytest.mark.parametrize("value", [None, "", "tomorrow", "2025-13-45"])
    def test_parse_invalid_returns_none(self, value):
        assert parse_timestamp(value) is None


class TestTimezones:
    def test_resolve_known(self):
        assert resolve_timezone("Europe/London") == ZoneInfo("Europe/London")

    def test_resolve_unknown_falls_back(self):
        assert resolve_timezone("Mars/Olympus", "Asia/Tokyo") == ZoneInfo("Asia/Tokyo")

    def test_resolve_none_uses_fallback(self):
        assert resolve_timezone(None) == ZoneInfo("UTC")

    def test_local_midnight(self):
        tz = ZoneInfo("America/New_York")
        # 03:00 UTC on the 15th is still the 14th in New York
        now = datetime(2025, 1, 15, 3, 0, tzinfo=timezone.utc)
        midnight = local_midnight(now, tz)
        assert midnight.date().isoformat() == "2025-01-14"
        assert (midnight.hour, midnight.minute) == (0, 0)
        assert midnight.astimezone(timezone.utc) == datetime(2025, 1, 14, 5, 0, tzinfo=timezone.utc)
