from collections.abc import Callable

from app.config import settings
from app.features.triage.clients import CalendarEvent, GoogleCalendarClient
from app.features.triage.domain import CalendarMetadata, CandidateItem, TriageSource
from app.features.triage.repository import GOOGLE_PROVIDER

from .base import FetchResult, SourceAdapter


def event_to_candidate(event: CalendarEvent) -> CandidateItem:
    return CandidateItem(
        source_id=event.id,
        title=event.summary,
        snippet=event.description,
        metadata=CalendarMetadata(
            start_at=event.start_at, all_day=event.all_day, location=event.location
        ),
    )


class CalendarAdapter(SourceAdapter):
    source = TriageSource.CALENDAR
    provider = GOOGLE_PROVIDER

    def __init__(
        self,
        credentials=None,
        client_factory: Callable[[str], GoogleCalendarClient] | None = None,
        window_days: int | None = None,
    ):
        super().__init__(credentials)
        self._client_factory = client_factory or GoogleCalendarClient
        self._window_days = window_days or settings.TRIAGE_CALENDAR_WINDOW_DAYS

    async def _fetch(self, user_id: str) -> FetchResult:
        token = await self._require_token(user_id)
        async with self._client_factory(token) as client:
            events = await client.list_upcoming(self._window_days)
        return FetchResult(items=[event_to_candidate(event) for event in events])
