"""Calendar adapter for users without a connected calendar.

Every slot is free and there are no events.
"""

from __future__ import annotations

from datetime import datetime


class NullCalendarAdapter:
    """No-op implementation of CalendarPort."""

    async def get_busy_periods(
        self, time_min: datetime, time_max: datetime
    ) -> list[dict]:
        return []

    async def get_upcoming_events(self, days: int = 60) -> list[dict]:
        return []
