"""Calendar adapter factory — creates the right adapter based on config."""

from __future__ import annotations

from zentasks.config import settings
from zentasks.ports.calendar_port import CalendarPort


def create_calendar_adapter() -> CalendarPort:
    """Return the calendar adapter matching CALENDAR_PROVIDER setting."""
    provider = settings.CALENDAR_PROVIDER.lower()

    if provider == "google":
        from zentasks.adapters.google_calendar import GoogleCalendarAdapter

        return GoogleCalendarAdapter()

    if provider == "none":
        from zentasks.adapters.null_calendar import NullCalendarAdapter

        return NullCalendarAdapter()

    raise ValueError(f"Unknown CALENDAR_PROVIDER: {provider!r}")
