"""Time context — pure helpers around wall-clock time.

Classifies "now" into a day-part bucket for time-of-day aware prompts, and
owns the timestamp conventions shared by the stores: everything this system
writes is an ISO-8601 UTC string with microsecond precision, so string order
equals time order.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class TimeContext:
    """Snapshot of the current moment, as seen by the prompts."""

    current_time: str        # ISO timestamp
    time_of_day: str         # early_morning | morning | afternoon | evening | night
    day_of_week: str         # Monday, Tuesday, ...
    is_weekend: bool
    is_business_hours: bool


def get_time_context(now: datetime) -> TimeContext:
    """Classify a (local) datetime into day part and weekend/business flags."""
    hours = now.hour
    is_weekend = now.weekday() >= 5

    if hours < 9:
        time_of_day = "early_morning"
    elif hours < 12:
        time_of_day = "morning"
    elif hours < 17:
        time_of_day = "afternoon"
    elif hours < 20:
        time_of_day = "evening"
    else:
        time_of_day = "night"

    return TimeContext(
        current_time=now.isoformat(),
        time_of_day=time_of_day,
        day_of_week=now.strftime("%A"),
        is_weekend=is_weekend,
        is_business_hours=8 <= hours < 18 and not is_weekend,
    )


# ---------------------------------------------------------------------------
# Timestamp conventions
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Format a datetime as the canonical stored form (UTC, microseconds)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO timestamp into an aware datetime; naive values are UTC.

    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.strip())
    except (ValueError, TypeError, AttributeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def resolve_timezone(name: str | None, fallback: str = "UTC") -> tzinfo:
    """Return a ZoneInfo for ``name``, falling back on unknown names."""
    for candidate in (name, fallback):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r", candidate)
    return timezone.utc


def local_midnight(now: datetime, tz: tzinfo) -> datetime:
    """Start of the local day containing ``now``, as an aware datetime."""
    local = now.astimezone(tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)
