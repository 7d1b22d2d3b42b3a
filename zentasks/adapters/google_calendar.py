"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the CalendarPort protocol.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from zentasks.config import settings
from zentasks.integrations.google_auth import get_calendar_service
from zentasks.ports.calendar_port import CalendarError

logger = logging.getLogger(__name__)


def _event_to_dict(item: dict) -> dict:
    start = item.get("start", {})
    end = item.get("end", {})
    return {
        "id": item.get("id", ""),
        "summary": item.get("summary", "(no title)"),
        "start": start.get("dateTime", start.get("date", "")),
        "end": end.get("dateTime", end.get("date", "")),
        "location": item.get("location"),
    }


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort."""

    def __init__(self, calendar_id: str | None = None, service=None) -> None:
        self._calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self._service = service

    def _get_service(self):
        if self._service is None:
            self._service = get_calendar_service()
        return self._service

    async def get_busy_periods(
        self, time_min: datetime, time_max: datetime
    ) -> list[dict]:
        body = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "items": [{"id": self._calendar_id}],
        }
        try:
            result = self._get_service().freebusy().query(body=body).execute()
        except Exception as exc:
            logger.error("Google free/busy query failed: %s", exc)
            raise CalendarError(f"Failed to query free/busy: {exc}") from exc

        calendar = result.get("calendars", {}).get(self._calendar_id, {})
        for error in calendar.get("errors", []):
            logger.warning("Free/busy error for %s: %s", self._calendar_id, error)

        busy = [
            {"start": b.get("start", ""), "end": b.get("end", "")}
            for b in calendar.get("busy", [])
        ]
        logger.info(
            "Found %d busy period(s) between %s and %s",
            len(busy), body["timeMin"], body["timeMax"],
        )
        return busy

    async def get_upcoming_events(self, days: int = 60) -> list[dict]:
        now = datetime.now(timezone.utc)
        try:
            result = (
                self._get_service()
                .events()
                .list(
                    calendarId=self._calendar_id,
                    timeMin=now.isoformat(),
                    timeMax=(now + timedelta(days=days)).isoformat(),
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=250,
                )
                .execute()
            )
        except Exception as exc:
            logger.error("Failed to list upcoming events: %s", exc)
            raise CalendarError(f"Failed to list events: {exc}") from exc

        events = [_event_to_dict(item) for item in result.get("items", [])]
        logger.info("Found %d upcoming event(s) in the next %d days", len(events), days)
        return events
