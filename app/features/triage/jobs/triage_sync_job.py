"""
Periodic triage sync job.

Runs the triage pipeline for every user with a connected provider, with a
bounded number of users in flight at once.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.db.helpers import DatabaseError
from app.features.triage.repository import OAuthCredentialRepository
from app.features.triage.services import TriageSyncService, triage_sync_service
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TriageSyncJobError(Exception):
    """Custom exception for triage sync job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class TriageSyncMetrics:
    """Metrics tracking for one job run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.users_processed = 0
        self.items_added = 0
        self.items_skipped = 0
        self.users_with_errors = 0
        self.total_duration_seconds = 0.0

    def record_user(self, added: int, skipped: int, error_count: int):
        self.users_processed += 1
        self.items_added += added
        self.items_skipped += skipped
        if error_count:
            self.users_with_errors += 1

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "triage_sync",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "users_processed": self.users_processed,
            "items_added": self.items_added,
            "items_skipped": self.items_skipped,
            "users_with_errors": self.users_with_errors,
        }


class TriageSyncJob:
    def __init__(
        self,
        service: TriageSyncService | None = None,
        credentials=None,
        max_concurrent_users: int | None = None,
    ):
        self.service = service or triage_sync_service
        self.credentials = credentials or OAuthCredentialRepository
        self.max_concurrent_users = max_concurrent_users or settings.TRIAGE_MAX_CONCURRENT_USERS
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = TriageSyncMetrics()

    async def run_once(self) -> dict:
        """
        Run a single iteration of the triage sync job.

        Returns:
            Dict: Job execution metrics

        Raises:
            TriageSyncJobError: If the list of users cannot be loaded
        """
        if self.is_running:
            logger.warning("Triage sync job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            try:
                user_ids = await self.credentials.list_connected_user_ids()
            except DatabaseError as e:
                logger.error("Failed to load connected users", error=str(e))
                raise TriageSyncJobError(
                    f"Failed to load connected users: {e}", operation="list_users"
                ) from e

            logger.info(
                "Starting triage sync job",
                user_count=len(user_ids),
                max_concurrent=self.max_concurrent_users,
            )

            semaphore = asyncio.Semaphore(self.max_concurrent_users)
            await asyncio.gather(
                *(self._sync_user_with_semaphore(semaphore, user_id) for user_id in user_ids)
            )

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            metrics = self.job_metrics.to_dict()
            logger.info("Triage sync job completed", **metrics)
            return metrics

        finally:
            self.is_running = False

    async def _sync_user_with_semaphore(self, semaphore: asyncio.Semaphore, user_id: str):
        async with semaphore:
            try:
                result = await self.service.run_triage_sync(user_id)
            except Exception as e:
                logger.error(
                    "Triage sync processing error",
                    user_id=user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    job_run="triage_sync",
                )
                self.job_metrics.record_user(0, 0, 1)
                return
            self.job_metrics.record_user(result.added, result.skipped, len(result.errors))

    def health_check(self) -> dict:
        now = datetime.now(UTC)
        overdue_threshold = timedelta(minutes=settings.TRIAGE_SYNC_INTERVAL_MINUTES * 2)
        is_overdue = (
            self.last_run_time is not None and (now - self.last_run_time) > overdue_threshold
        )

        return {
            "healthy": not is_overdue,
            "service": "triage_sync_job",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }


# Singleton instance for application use
triage_sync_job = TriageSyncJob()


async def run_triage_sync_job() -> dict:
    """Run a single iteration of the triage sync job."""
    return await triage_sync_job.run_once()


async def start_triage_sync_scheduler():
    """Run the triage sync job forever on the configured interval."""
    interval_minutes = settings.TRIAGE_SYNC_INTERVAL_MINUTES
    logger.info("Starting triage sync job scheduler", interval_minutes=interval_minutes)

    while True:
        try:
            metrics = await run_triage_sync_job()
            if not metrics.get("skipped", False):
                logger.info("Triage sync job cycle completed", **metrics)
        except TriageSyncJobError as e:
            logger.error("Error in triage sync job scheduler", error=str(e), operation=e.operation)

        await asyncio.sleep(interval_minutes * 60)
