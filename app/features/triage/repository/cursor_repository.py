"""
Postgres repository for per-user, per-source sync cursors.
"""

from app.db.helpers import execute_query, fetch_one
from app.features.triage.domain import TriageSource
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class SyncCursorRepository:
    @staticmethod
    async def get_cursor(user_id: str, source: TriageSource) -> str | None:
        row = await fetch_one(
            """
            SELECT position
            FROM sync_cursors
            WHERE user_id = %s AND source = %s
            """,
            (user_id, source.value),
        )
        return row["position"] if row else None

    @staticmethod
    async def set_cursor(user_id: str, source: TriageSource, position: str) -> None:
        query = """
            INSERT INTO sync_cursors (user_id, source, position, updated_at)
            VALUES (%s, %s, %s, NOW())
            ON CONFLICT (user_id, source)
            DO UPDATE SET
                position = EXCLUDED.position,
                updated_at = NOW()
        """
        await execute_query(query, (user_id, source.value, position))
        logger.debug("Sync cursor stored", user_id=user_id, source=source.value)

    @staticmethod
    async def clear_cursor(user_id: str, source: TriageSource) -> None:
        await execute_query(
            "DELETE FROM sync_cursors WHERE user_id = %s AND source = %s",
            (user_id, source.value),
        )
