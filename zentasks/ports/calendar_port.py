"""Calendar port — abstract interface for calendar reads.

Core modules depend on this protocol, never on a specific provider.
Calendar data is advisory: callers catch CalendarError and carry on with
an empty result.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class CalendarError(Exception):
    """Raised when any calendar provider operation fails."""


class CalendarPort(Protocol):
    """Abstract calendar interface used by core modules."""

    async def get_busy_periods(
        self, time_min: datetime, time_max: datetime
    ) -> list[dict]: ...

    async def get_upcoming_events(self, days: int = 60) -> list[dict]: ...
