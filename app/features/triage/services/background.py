"""
Fire-and-forget triage runs, e.g. right after a user connects a provider.
"""

import asyncio

from app.infrastructure.observability.logging import get_logger

from .orchestrator import TriageSyncService, triage_sync_service

logger = get_logger(__name__)


class BackgroundSyncRunner:
    def __init__(self, service: TriageSyncService | None = None):
        self._service = service or triage_sync_service
        # Strong references so running tasks are not garbage collected
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def spawn(self, user_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._run(user_id), name=f"triage-sync-{user_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, user_id: str) -> None:
        try:
            result = await self._service.run_triage_sync(user_id)
            logger.info(
                "Background triage sync finished",
                user_id=user_id,
                added=result.added,
                skipped=result.skipped,
                error_count=len(result.errors),
            )
        except Exception as e:
            logger.error(
                "Background triage sync failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )


background_sync_runner = BackgroundSyncRunner()
