"""
Email source adapter with incremental, cursor-based sync.

A stored Gmail historyId lets each run fetch only new inbox arrivals. When
there is no cursor, or Gmail no longer recognizes it, the adapter falls back
to a full resync (recent inbox + starred) and proposes a fresh cursor. The
incremental path only surfaces new arrivals; starred/archived reconciliation
happens on full resyncs.

The proposed cursor is saved by `commit()`, which the orchestrator calls only
after every fetched message was scored and saved. Anything left behind is
listed again on the next run.
"""

import asyncio
from collections.abc import Callable

from app.config import settings
from app.db.helpers import DatabaseError
from app.features.triage.clients import GmailClient, GmailHistoryPage, GmailMessageHeader
from app.features.triage.domain import CandidateItem, EmailMetadata, TriageSource
from app.features.triage.repository import (
    GOOGLE_PROVIDER,
    EmailMirrorRepository,
    SyncCursorRepository,
)
from app.infrastructure.observability.logging import get_logger

from .base import FetchResult, SourceAdapter

logger = get_logger(__name__)


def message_to_candidate(message: GmailMessageHeader, is_starred: bool = False) -> CandidateItem:
    return CandidateItem(
        source_id=message.id,
        title=message.subject,
        snippet=message.snippet,
        metadata=EmailMetadata(
            thread_id=message.thread_id,
            sender=message.sender,
            date=message.date,
            is_starred=is_starred,
        ),
    )


def merge_full_sync(
    recent: list[GmailMessageHeader], starred: list[GmailMessageHeader]
) -> list[CandidateItem]:
    """Union inbox and starred results by message id; the starred flag wins."""
    starred_ids = {message.id for message in starred}
    merged: dict[str, GmailMessageHeader] = {}
    for message in [*recent, *starred]:
        merged.setdefault(message.id, message)
    return [message_to_candidate(m, m.id in starred_ids) for m in merged.values()]


class EmailAdapter(SourceAdapter):
    source = TriageSource.EMAIL
    provider = GOOGLE_PROVIDER

    def __init__(
        self,
        credentials=None,
        client_factory: Callable[[str], GmailClient] | None = None,
        cursors=None,
        mirror=None,
        full_sync_limit: int | None = None,
    ):
        super().__init__(credentials)
        self._client_factory = client_factory or GmailClient
        self._cursors = cursors or SyncCursorRepository
        self._mirror = mirror or EmailMirrorRepository
        self._full_sync_limit = full_sync_limit or settings.TRIAGE_GMAIL_FULL_SYNC_LIMIT

    async def _fetch(self, user_id: str) -> FetchResult:
        token = await self._require_token(user_id)

        async with self._client_factory(token) as client:
            cursor = await self._cursors.get_cursor(user_id, self.source)
            if cursor:
                page = await client.list_since(cursor)
                if not page.expired:
                    result = await self._apply_incremental(user_id, cursor, page)
                else:
                    logger.info("Gmail cursor expired, running full resync", user_id=user_id)
                    await self._cursors.clear_cursor(user_id, self.source)
                    result = await self._full_resync(user_id, client)
            else:
                result = await self._full_resync(user_id, client)

            if client.dropped_message_ids:
                # Keep the old cursor so the dropped messages are listed again next run
                logger.warning(
                    "Holding Gmail cursor after header failures",
                    user_id=user_id,
                    dropped=len(client.dropped_message_ids),
                )
                result.cursor = None

        return result

    async def commit(self, user_id: str, result: FetchResult) -> None:
        if not result.cursor:
            return
        try:
            await self._cursors.set_cursor(user_id, self.source, result.cursor)
        except DatabaseError as e:
            # The next run repeats this page; queue upserts are idempotent
            logger.warning("Failed to save Gmail cursor", user_id=user_id, error=str(e))

    async def _apply_incremental(
        self, user_id: str, cursor: str, page: GmailHistoryPage
    ) -> FetchResult:
        await self._update_mirror(user_id, page.messages, full_sync=False)

        logger.debug(
            "Gmail incremental sync",
            user_id=user_id,
            new_messages=len(page.messages),
        )
        advanced = page.new_cursor if page.new_cursor != cursor else None
        return FetchResult(
            items=[message_to_candidate(message) for message in page.messages], cursor=advanced
        )

    async def _full_resync(self, user_id: str, client: GmailClient) -> FetchResult:
        outcomes = await asyncio.gather(
            client.list_recent(self._full_sync_limit),
            client.list_starred(self._full_sync_limit),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        recent, starred = outcomes

        items = merge_full_sync(recent, starred)
        starred_ids = {message.id for message in starred}

        seen = {message.id: message for message in [*recent, *starred]}
        await self._update_mirror(
            user_id, list(seen.values()), starred_ids=starred_ids, full_sync=True
        )
        # Messages can return to the inbox after being archived
        inbox_ids = [message.id for message in recent]
        try:
            await self._mirror.unarchive(user_id, inbox_ids)
        except DatabaseError as e:
            logger.warning("Failed to clear archived flags", user_id=user_id, error=str(e))

        new_cursor = await client.current_cursor()

        logger.info(
            "Gmail full resync",
            user_id=user_id,
            inbox_count=len(recent),
            starred_count=len(starred),
            merged_count=len(items),
        )
        return FetchResult(items=items, cursor=new_cursor)

    async def _update_mirror(
        self,
        user_id: str,
        messages: list[GmailMessageHeader],
        starred_ids: set[str] | None = None,
        *,
        full_sync: bool,
    ) -> None:
        try:
            await self._mirror.upsert_messages(
                user_id, messages, starred_ids, full_sync=full_sync
            )
        except DatabaseError as e:
            logger.warning("Email mirror update failed", user_id=user_id, error=str(e))
