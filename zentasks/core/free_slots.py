"""
Zen Tasks — Free-Slot Calculator.

Finds the gaps between calendar commitments in a short look-ahead window, so
the nudge job only proposes a task when there is actually time to do it.

Pure function over time ranges: no calendar calls happen here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from zentasks.core.time_context import parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)


@dataclass
class BusyPeriod:
    """A half-open [start, end) interval during which the user is committed."""

    start: datetime
    end: datetime


@dataclass
class CalendarSlot:
    """A free interval of at least the requested minimum duration."""

    start: datetime
    end: datetime
    duration_minutes: int

    def to_dict(self) -> dict:
        return {
            "start": to_iso(self.start),
            "end": to_iso(self.end),
            "duration_minutes": self.duration_minutes,
        }


def busy_periods_from_raw(raw: list[dict]) -> list[BusyPeriod]:
    """Convert provider {"start": iso, "end": iso} dicts into BusyPeriods.

    Entries whose timestamps cannot be parsed are dropped.
    """
    periods: list[BusyPeriod] = []
    for item in raw:
        start = parse_timestamp(item.get("start"))
        end = parse_timestamp(item.get("end"))
        if start is None or end is None:
            logger.warning("Dropping unparseable busy period: %s", item)
            continue
        periods.append(BusyPeriod(start=start, end=end))
    return periods


def _gap(start: datetime, end: datetime, min_minutes: int) -> CalendarSlot | None:
    minutes = (end - start).total_seconds() / 60
    if minutes < min_minutes:
        return None
    return CalendarSlot(start=start, end=end, duration_minutes=int(minutes))


def find_free_slots(
    busy_periods: list[BusyPeriod],
    window_end: datetime,
    min_minutes: int = 15,
    now: datetime | None = None,
) -> list[CalendarSlot]:
    """Return the free intervals within [now, window_end] of >= min_minutes.

    Busy periods may arrive unsorted, overlapping or partly in the past.
    A single cursor sweeps forward from ``now`` and never moves backwards,
    which merges overlaps without a separate pass. Inverted or empty
    periods are ignored.

    Args:
        busy_periods: Busy intervals, in any order.
        window_end: End of the look-ahead window.
        min_minutes: Minimum slot length; shorter gaps are skipped.
        now: Window start. Defaults to the current UTC time.

    Returns:
        Slots in ascending order, each with a floored whole-minute duration.
    """
    now = now or utc_now()

    slots: list[CalendarSlot] = []
    cursor = now

    for busy in sorted(busy_periods, key=lambda b: b.start):
        if busy.end <= busy.start:
            continue
        if cursor < busy.start:
            slot = _gap(cursor, min(busy.start, window_end), min_minutes)
            if slot is not None:
                slots.append(slot)
        if busy.end > cursor:
            cursor = busy.end

    if cursor < window_end:
        slot = _gap(cursor, window_end, min_minutes)
        if slot is not None:
            slots.append(slot)

    return slots
