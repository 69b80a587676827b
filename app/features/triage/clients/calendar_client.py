"""
Google Calendar API client for the calendar triage source.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.infrastructure.observability.logging import get_logger

from .base import ProviderClient

logger = get_logger(__name__)

CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
MAX_EVENTS = 20
DESCRIPTION_LIMIT = 200


@dataclass(frozen=True, slots=True)
class CalendarEvent:
    id: str
    summary: str
    description: str
    start_at: datetime
    all_day: bool
    location: str | None


class GoogleCalendarClient(ProviderClient):
    provider_name = "Calendar"
    base_url = CALENDAR_API_BASE_URL

    async def list_upcoming(self, window_days: int) -> list[CalendarEvent]:
        now = datetime.now(UTC)
        params = {
            "timeMin": now.isoformat(),
            "timeMax": (now + timedelta(days=window_days)).isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_EVENTS,
        }
        data = await self._get_json("/calendars/primary/events", "list_events", params=params)
        events = [event for event in map(parse_event, data.get("items", [])) if event]

        logger.debug("Calendar events listed", event_count=len(events), window_days=window_days)
        return events


def parse_event_start(start: dict) -> tuple[datetime | None, bool]:
    """Parse a Google `start` block. All-day events start at 00:00 UTC."""
    if start.get("dateTime"):
        try:
            parsed = datetime.fromisoformat(start["dateTime"].replace("Z", "+00:00"))
        except ValueError:
            return None, False
        return (parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)), False

    if start.get("date"):
        try:
            return datetime.strptime(start["date"], "%Y-%m-%d").replace(tzinfo=UTC), True
        except ValueError:
            return None, True

    return None, False


def parse_event(data: dict) -> CalendarEvent | None:
    start_at, all_day = parse_event_start(data.get("start") or {})
    if not data.get("id") or start_at is None:
        return None

    return CalendarEvent(
        id=data["id"],
        summary=data.get("summary") or "(no title)",
        description=(data.get("description") or "")[:DESCRIPTION_LIMIT],
        start_at=start_at,
        all_day=all_day,
        location=data.get("location"),
    )
