"""
Triage sync orchestration.

One run fans out to every source pipeline concurrently:

    adapter.fetch -> scorer -> admission -> guarded queue upsert

Pipelines share nothing except the run accumulator, which is guarded by an
asyncio.Lock. A failing source only contributes an error line; the run
itself always returns a result. A source cursor is committed only after every
fetched item was scored and saved.
"""

import asyncio
import time
from collections.abc import Mapping, Sequence

from app.db.helpers import DatabaseError
from app.features.triage.adapters import (
    CalendarAdapter,
    EmailAdapter,
    FetchResult,
    SecondaryTaskAdapter,
    SourceAdapter,
    TaskManagerAdapter,
)
from app.features.triage.clients import OpenAIUrgencyClient
from app.features.triage.domain import TriageSource, TriageSyncResult
from app.features.triage.pipeline.admission import admit
from app.features.triage.pipeline.scoring import SemanticScorer, StructuredScorer
from app.features.triage.repository import TriageQueueRepository
from app.infrastructure.observability.logging import get_logger, log_sync_summary

from .run_lock import TriageRunLock

logger = get_logger(__name__)

ALREADY_RUNNING_ERROR = "Triage sync already in progress"


class _RunAccumulator:
    """Mutex-guarded counters shared by the concurrent source pipelines."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self.result = TriageSyncResult()

    async def record(self, added: int = 0, skipped: int = 0, errors: Sequence[str] = ()):
        async with self._lock:
            self.result.added += added
            self.result.skipped += skipped
            self.result.errors.extend(errors)


def default_adapters() -> list[SourceAdapter]:
    return [EmailAdapter(), TaskManagerAdapter(), CalendarAdapter(), SecondaryTaskAdapter()]


class TriageSyncService:
    def __init__(
        self,
        adapters: Sequence[SourceAdapter] | None = None,
        scorers: Mapping[TriageSource, object] | None = None,
        queue=None,
        run_lock: TriageRunLock | None = None,
        threshold: int | None = None,
    ):
        self._adapters = list(adapters) if adapters is not None else default_adapters()
        self._scorers = dict(scorers or {})
        self._queue = queue or TriageQueueRepository
        self._run_lock = run_lock or TriageRunLock()
        self._threshold = threshold

    def _scorer_for(self, source: TriageSource):
        if source not in self._scorers:
            if source is TriageSource.EMAIL:
                self._scorers[source] = SemanticScorer(OpenAIUrgencyClient())
            else:
                self._scorers[source] = StructuredScorer()
        return self._scorers[source]

    async def run_triage_sync(self, user_id: str) -> TriageSyncResult:
        """Fetch, score, admit and enqueue items from every source for one user."""
        started = time.perf_counter()

        async with self._run_lock.hold(user_id) as may_run:
            if not may_run:
                return TriageSyncResult(errors=[ALREADY_RUNNING_ERROR])
            result = await self._run_pipelines(user_id)

        log_sync_summary(
            user_id,
            added=result.added,
            skipped=result.skipped,
            error_count=len(result.errors),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result

    async def _run_pipelines(self, user_id: str) -> TriageSyncResult:
        accumulator = _RunAccumulator()
        outcomes = await asyncio.gather(
            *(self._run_pipeline(user_id, adapter, accumulator) for adapter in self._adapters),
            return_exceptions=True,
        )

        for adapter, outcome in zip(self._adapters, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.error(
                    "Triage pipeline crashed",
                    user_id=user_id,
                    source=adapter.source.value,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                message = str(outcome) or type(outcome).__name__
                await accumulator.record(errors=[f"{adapter.source.label}: {message}"])

        return accumulator.result

    async def _run_pipeline(
        self, user_id: str, adapter: SourceAdapter, accumulator: _RunAccumulator
    ) -> None:
        label = adapter.source.label
        fetched = await adapter.fetch(user_id)

        if fetched.error is not None:
            # Missing scope means the source is simply unavailable to this user
            if fetched.error.kind.is_reported:
                await accumulator.record(errors=[f"{label}: {fetched.error.message}"])
            return

        if fetched.warnings:
            await accumulator.record(errors=[f"{label}: {w}" for w in fetched.warnings])

        if not fetched.items:
            await self._commit(user_id, adapter, fetched)
            return

        report = await self._scorer_for(adapter.source).score_items(fetched.items)

        added = 0
        skipped = report.failed
        errors = list(report.errors)
        save_failures: list[str] = []

        for item, score in report.scored:
            if not admit(score, self._threshold):
                skipped += 1
                continue
            try:
                written = await self._queue.upsert_if_pending(user_id, item, score)
            except DatabaseError as e:
                logger.warning(
                    "Queue upsert failed",
                    user_id=user_id,
                    source=item.source.value,
                    source_id=item.source_id,
                    error=str(e),
                )
                save_failures.append(str(e))
                skipped += 1
                continue
            if written:
                added += 1
            else:
                skipped += 1

        if save_failures:
            errors.append(
                f"{label}: {len(save_failures)} item(s) could not be saved ({save_failures[0]})"
            )

        logger.debug(
            "Triage pipeline finished",
            user_id=user_id,
            source=adapter.source.value,
            fetched=len(fetched.items),
            added=added,
            skipped=skipped,
        )
        await accumulator.record(added=added, skipped=skipped, errors=errors)

        # Unscored or unsaved items must be fetched again, so progress stays put
        if report.failed == 0 and not save_failures:
            await self._commit(user_id, adapter, fetched)
        elif fetched.cursor is not None:
            logger.info(
                "Holding sync cursor for retry",
                user_id=user_id,
                source=adapter.source.value,
                unscored=report.failed,
                unsaved=len(save_failures),
            )

    async def _commit(self, user_id: str, adapter: SourceAdapter, fetched: FetchResult) -> None:
        if fetched.cursor is not None:
            await adapter.commit(user_id, fetched)


triage_sync_service = TriageSyncService()
