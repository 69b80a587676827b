"""
Postgres repository for the triage review queue.

The upsert is the only write path the sync pipeline uses. Its conflict
branch is guarded on `status = 'pending'`, so a row the user has already
reviewed is never rewritten or reset by a later sync.
"""

from enum import StrEnum
from uuid import uuid4

from psycopg.types.json import Jsonb

from app.db.helpers import execute_query, fetch_all, fetch_one, fetch_val, with_db_retry
from app.features.triage.domain import CandidateItem, QueueStatus, TriageQueueEntry, TriageScore
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TransitionOutcome(StrEnum):
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    ALREADY_REVIEWED = "already_reviewed"


UPSERT_PENDING_SQL = """
    INSERT INTO triage_queue (
        id, user_id, source, source_id, title, snippet,
        score, reasoning, source_metadata, status
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, 'pending')
    ON CONFLICT (user_id, source, source_id)
    DO UPDATE SET
        title = EXCLUDED.title,
        snippet = EXCLUDED.snippet,
        score = EXCLUDED.score,
        reasoning = EXCLUDED.reasoning,
        source_metadata = EXCLUDED.source_metadata,
        updated_at = NOW()
    WHERE triage_queue.status = 'pending'
"""


class TriageQueueRepository:
    @staticmethod
    @with_db_retry(max_retries=2)
    async def upsert_if_pending(user_id: str, item: CandidateItem, score: TriageScore) -> bool:
        """
        Insert a new pending entry or refresh an existing pending one.

        Returns:
            True if a row was inserted or updated, False if the existing row
            has already been reviewed and the write was suppressed
        """
        rowcount = await execute_query(
            UPSERT_PENDING_SQL,
            (
                str(uuid4()),
                user_id,
                item.source.value,
                item.source_id,
                item.title,
                item.snippet,
                score.value,
                score.reasoning,
                Jsonb(item.metadata.to_json()),
            ),
        )
        written = rowcount > 0
        if not written:
            logger.debug(
                "Queue write suppressed for reviewed entry",
                user_id=user_id,
                source=item.source.value,
                source_id=item.source_id,
            )
        return written

    @staticmethod
    async def transition_status(
        user_id: str, entry_id: str, status: QueueStatus
    ) -> TransitionOutcome:
        """Move a pending entry to a reviewed status, stamping reviewed_at."""
        if not status.is_reviewed:
            raise ValueError("Entries can only transition to a reviewed status")

        rowcount = await execute_query(
            """
            UPDATE triage_queue
            SET status = %s, reviewed_at = NOW(), updated_at = NOW()
            WHERE id = %s AND user_id = %s AND status = 'pending'
            """,
            (status.value, entry_id, user_id),
        )
        if rowcount > 0:
            logger.info(
                "Triage entry reviewed", user_id=user_id, entry_id=entry_id, status=status.value
            )
            return TransitionOutcome.UPDATED

        existing = await fetch_one(
            "SELECT status FROM triage_queue WHERE id = %s AND user_id = %s",
            (entry_id, user_id),
        )
        if existing is None:
            return TransitionOutcome.NOT_FOUND
        return TransitionOutcome.ALREADY_REVIEWED

    @staticmethod
    async def list_pending(user_id: str, limit: int = 50) -> list[TriageQueueEntry]:
        rows = await fetch_all(
            """
            SELECT id, user_id, source, source_id, title, snippet, score, reasoning,
                   source_metadata, status, reviewed_at, created_at
            FROM triage_queue
            WHERE user_id = %s AND status = 'pending'
            ORDER BY score DESC, created_at DESC
            LIMIT %s
            """,
            (user_id, limit),
        )
        return [TriageQueueEntry.from_row(row) for row in rows]

    @staticmethod
    async def count_pending(user_id: str) -> int:
        count = await fetch_val(
            "SELECT COUNT(*) AS count FROM triage_queue WHERE user_id = %s AND status = 'pending'",
            (user_id,),
        )
        return int(count or 0)
