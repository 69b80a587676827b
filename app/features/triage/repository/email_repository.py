"""
Local mirror of the Gmail messages seen by the email triage source.

Full resyncs refresh `is_starred` and clear `is_archived` for everything
still in the inbox. Incremental syncs only add new arrivals.
"""

from collections.abc import Sequence
from uuid import uuid4

import psycopg

from app.db.helpers import DatabaseError, execute_query
from app.db.pool import get_db_transaction
from app.features.triage.clients import GmailMessageHeader
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

FULL_SYNC_UPSERT_SQL = """
    INSERT INTO emails (
        id, user_id, gmail_id, thread_id, subject, from_raw, snippet, date, is_starred
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (user_id, gmail_id)
    DO UPDATE SET
        thread_id = EXCLUDED.thread_id,
        subject = EXCLUDED.subject,
        from_raw = EXCLUDED.from_raw,
        snippet = EXCLUDED.snippet,
        date = EXCLUDED.date,
        is_starred = EXCLUDED.is_starred,
        updated_at = NOW()
"""

INCREMENTAL_INSERT_SQL = """
    INSERT INTO emails (
        id, user_id, gmail_id, thread_id, subject, from_raw, snippet, date, is_starred
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (user_id, gmail_id) DO NOTHING
"""


class EmailMirrorRepository:
    @staticmethod
    async def upsert_messages(
        user_id: str,
        messages: Sequence[GmailMessageHeader],
        starred_ids: set[str] | None = None,
        *,
        full_sync: bool,
    ) -> None:
        """
        Persist fetched headers.

        Args:
            user_id: Owner of the mailbox
            messages: Headers to store
            starred_ids: Ids known to be starred (full sync only)
            full_sync: Refresh existing rows instead of inserting new ones only
        """
        if not messages:
            return

        starred_ids = starred_ids or set()
        query = FULL_SYNC_UPSERT_SQL if full_sync else INCREMENTAL_INSERT_SQL
        params = [
            (
                str(uuid4()),
                user_id,
                message.id,
                message.thread_id,
                message.subject,
                message.sender,
                message.snippet,
                message.date,
                message.id in starred_ids,
            )
            for message in messages
        ]

        try:
            async with await get_db_transaction() as conn:
                async with conn.cursor() as cur:
                    await cur.executemany(query, params)
        except psycopg.Error as e:
            logger.error("Email mirror write failed", user_id=user_id, error=str(e))
            raise DatabaseError(f"Email mirror write failed: {e}", operation="upsert") from e

        logger.debug(
            "Email mirror updated",
            user_id=user_id,
            count=len(params),
            full_sync=full_sync,
        )

    @staticmethod
    async def unarchive(user_id: str, gmail_ids: Sequence[str]) -> int:
        """Clear is_archived for messages seen in the current inbox."""
        if not gmail_ids:
            return 0
        return await execute_query(
            """
            UPDATE emails
            SET is_archived = FALSE, updated_at = NOW()
            WHERE user_id = %s AND gmail_id = ANY(%s) AND is_archived
            """,
            (user_id, list(gmail_ids)),
        )
