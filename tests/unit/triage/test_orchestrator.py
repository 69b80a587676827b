import asyncio
from datetime import UTC, date, datetime, timedelta

import pytest

from app.db.helpers import DatabaseError
from app.features.triage.adapters import EmailAdapter, FetchResult
from app.features.triage.clients import GmailHistoryPage, GmailMessageHeader
from app.features.triage.domain import (
    CalendarMetadata,
    CandidateItem,
    EmailMetadata,
    QueueStatus,
    RateLimitedError,
    SecondaryTaskMetadata,
    SourceError,
    SourceErrorKind,
    TaskManagerMetadata,
    TriageScore,
    TriageSource,
)
from app.features.triage.pipeline.scoring import (
    ScoringReport,
    SemanticScorer,
    StructuredScorer,
)
from app.features.triage.services import ALREADY_RUNNING_ERROR, TriageRunLock, TriageSyncService

USER = "user-123"
TODAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


class StaticAdapter:
    def __init__(self, source, items=(), error=None, delay=0.0, warnings=(), cursor=None):
        self.source = source
        self.items = list(items)
        self.error = error
        self.delay = delay
        self.warnings = list(warnings)
        self.cursor = cursor
        self.calls = 0
        self.commits: list[str] = []

    async def fetch(self, user_id):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error:
            return FetchResult(error=self.error)
        return FetchResult(items=list(self.items), warnings=self.warnings, cursor=self.cursor)

    async def commit(self, user_id, result):
        self.commits.append(result.cursor)


class FixedEmailScorer:
    def __init__(self, value=80, reasoning="Needs a reply"):
        self.value = value
        self.reasoning = reasoning

    async def score_items(self, items):
        score = TriageScore(self.value, self.reasoning)
        return ScoringReport(scored=[(item, score) for item in items])


def _email(source_id="m1", subject="Contract renewal"):
    return CandidateItem(
        source_id, subject, "Sign by Friday", EmailMetadata("t1", "dana@example.com", "Mon")
    )


def _task(source_id="t1", priority=4, days=0):
    due = TODAY + timedelta(days=days)
    return CandidateItem(source_id, "Pay rent", "", TaskManagerMetadata(priority, due))


def _event(source_id="e1", hours=2):
    return CandidateItem(
        source_id, "Board meeting", "", CalendarMetadata(start_at=NOW + timedelta(hours=hours))
    )


def _gtask(source_id="g1", days=-1):
    due = TODAY + timedelta(days=days)
    return CandidateItem(source_id, "Renew passport", "", SecondaryTaskMetadata(due=due))


def _service(adapters, queue_store, fake_redis, email_scorer=None):
    structured = StructuredScorer(today=TODAY, now=NOW)
    scorers = {
        TriageSource.EMAIL: email_scorer or FixedEmailScorer(),
        TriageSource.TASK_MANAGER: structured,
        TriageSource.CALENDAR: structured,
        TriageSource.SECONDARY_TASK_LIST: structured,
    }
    return TriageSyncService(
        adapters=adapters,
        scorers=scorers,
        queue=queue_store,
        run_lock=TriageRunLock(redis_client=fake_redis),
    )


def _healthy_adapters():
    return [
        StaticAdapter(TriageSource.EMAIL, [_email()]),
        StaticAdapter(TriageSource.TASK_MANAGER, [_task()]),
        StaticAdapter(TriageSource.CALENDAR, [_event()]),
        StaticAdapter(TriageSource.SECONDARY_TASK_LIST, [_gtask()]),
    ]


@pytest.mark.asyncio
async def test_calendar_failure_is_isolated(queue_store, fake_redis):
    adapters = _healthy_adapters()
    adapters[2] = StaticAdapter(
        TriageSource.CALENDAR,
        error=SourceError(SourceErrorKind.TRANSIENT, "list_events failed (HTTP 503): unavailable"),
    )

    result = await _service(adapters, queue_store, fake_redis).run_triage_sync(USER)

    assert len(result.errors) == 1
    assert result.errors[0] == "Calendar: list_events failed (HTTP 503): unavailable"
    assert result.added == 3
    assert result.partial is True
    assert {key[1] for key in queue_store.rows} == {"email", "task_manager", "secondary_task_list"}


@pytest.mark.asyncio
async def test_insufficient_scope_is_silent(queue_store, fake_redis):
    adapters = _healthy_adapters()
    adapters[3] = StaticAdapter(
        TriageSource.SECONDARY_TASK_LIST,
        error=SourceError(SourceErrorKind.INSUFFICIENT_SCOPE, "tasks scope missing"),
    )

    result = await _service(adapters, queue_store, fake_redis).run_triage_sync(USER)

    assert result.errors == []
    assert result.added == 3


@pytest.mark.asyncio
async def test_below_threshold_items_are_skipped(queue_store, fake_redis):
    adapters = [
        StaticAdapter(TriageSource.TASK_MANAGER, [_task("t1", priority=1, days=30)]),
        StaticAdapter(TriageSource.CALENDAR, [_event("e1", hours=2), _event("e2", hours=100)]),
    ]

    result = await _service(adapters, queue_store, fake_redis).run_triage_sync(USER)

    assert result.added == 1
    assert result.skipped == 2
    assert list(queue_store.rows) == [(USER, "calendar", "e1")]


@pytest.mark.asyncio
async def test_rerun_is_idempotent(queue_store, fake_redis):
    service = _service(_healthy_adapters(), queue_store, fake_redis)

    await service.run_triage_sync(USER)
    snapshot = {key: dict(row) for key, row in queue_store.rows.items()}
    await service.run_triage_sync(USER)

    assert queue_store.rows == snapshot
    assert len(queue_store.rows) == 4


@pytest.mark.asyncio
async def test_reviewed_entries_are_not_overwritten(queue_store, fake_redis):
    await _service(
        [StaticAdapter(TriageSource.EMAIL, [_email()])], queue_store, fake_redis
    ).run_triage_sync(USER)
    queue_store.review(USER, "email", "m1", QueueStatus.DISMISSED)

    fresher = _service(
        [StaticAdapter(TriageSource.EMAIL, [_email(subject="RE: Contract renewal")])],
        queue_store,
        fake_redis,
        email_scorer=FixedEmailScorer(value=95, reasoning="Escalated"),
    )
    result = await fresher.run_triage_sync(USER)

    row = queue_store.rows[(USER, "email", "m1")]
    assert row["title"] == "Contract renewal"
    assert row["score"] == 80
    assert row["status"] == QueueStatus.DISMISSED
    assert result.added == 0
    assert result.skipped == 1


@pytest.mark.asyncio
async def test_scoring_failures_count_as_skipped(queue_store, fake_redis):
    class PartialScorer:
        async def score_items(self, items):
            return ScoringReport(
                scored=[(items[0], TriageScore(90, "Urgent"))],
                failed=1,
                errors=["Gmail scoring: 1 item(s) rate limited"],
            )

    adapters = [StaticAdapter(TriageSource.EMAIL, [_email("m1"), _email("m2")])]

    result = await _service(
        adapters, queue_store, fake_redis, email_scorer=PartialScorer()
    ).run_triage_sync(USER)

    assert result.added == 1
    assert result.skipped == 1
    assert result.errors == ["Gmail scoring: 1 item(s) rate limited"]


@pytest.mark.asyncio
async def test_upsert_failure_does_not_block_other_items(queue_store, fake_redis):
    original = queue_store.upsert_if_pending

    async def flaky_upsert(user_id, item, score):
        if item.source_id == "t1":
            raise DatabaseError("Query failed: deadlock detected", operation="execute")
        return await original(user_id, item, score)

    queue_store.upsert_if_pending = flaky_upsert
    adapters = [StaticAdapter(TriageSource.TASK_MANAGER, [_task("t1"), _task("t2")])]

    result = await _service(adapters, queue_store, fake_redis).run_triage_sync(USER)

    assert result.added == 1
    assert list(queue_store.rows) == [(USER, "task_manager", "t2")]
    assert result.errors == [
        "Todoist: 1 item(s) could not be saved (Query failed: deadlock detected)"
    ]


@pytest.mark.asyncio
async def test_crashing_scorer_becomes_an_error_entry(queue_store, fake_redis):
    class BrokenScorer:
        async def score_items(self, items):
            raise RuntimeError("scorer exploded")

    adapters = _healthy_adapters()

    result = await _service(
        adapters, queue_store, fake_redis, email_scorer=BrokenScorer()
    ).run_triage_sync(USER)

    assert result.errors == ["Gmail: scorer exploded"]
    assert result.added == 3


@pytest.mark.asyncio
async def test_pipelines_run_concurrently(queue_store, fake_redis):
    adapters = [
        StaticAdapter(TriageSource.TASK_MANAGER, [_task()], delay=0.2),
        StaticAdapter(TriageSource.CALENDAR, [_event()], delay=0.2),
        StaticAdapter(TriageSource.SECONDARY_TASK_LIST, [_gtask()], delay=0.2),
    ]
    loop = asyncio.get_running_loop()

    started = loop.time()
    await _service(adapters, queue_store, fake_redis).run_triage_sync(USER)

    assert loop.time() - started < 0.5


@pytest.mark.asyncio
async def test_overlapping_run_for_same_user_is_refused(queue_store, fake_redis):
    fake_redis.store[f"triage_sync_lock:{USER}"] = "other-run"
    adapters = _healthy_adapters()

    result = await _service(adapters, queue_store, fake_redis).run_triage_sync(USER)

    assert result.added == 0
    assert result.errors == [ALREADY_RUNNING_ERROR]
    assert all(adapter.calls == 0 for adapter in adapters)


@pytest.mark.asyncio
async def test_run_proceeds_when_redis_is_down(queue_store, fake_redis):
    fake_redis.available = False

    result = await _service(_healthy_adapters(), queue_store, fake_redis).run_triage_sync(USER)

    assert result.added == 4
    assert result.errors == []


@pytest.mark.asyncio
async def test_lock_is_released_after_run(queue_store, fake_redis):
    await _service(_healthy_adapters(), queue_store, fake_redis).run_triage_sync(USER)

    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_partial_source_failure_is_reported_alongside_items(queue_store, fake_redis):
    adapters = [
        StaticAdapter(
            TriageSource.SECONDARY_TASK_LIST,
            [_gtask()],
            warnings=["1 task list(s) failed (list_tasks failed (HTTP 503): unavailable)"],
        )
    ]

    result = await _service(adapters, queue_store, fake_redis).run_triage_sync(USER)

    assert result.added == 1
    assert result.errors == [
        "Google Tasks: 1 task list(s) failed (list_tasks failed (HTTP 503): unavailable)"
    ]


@pytest.mark.asyncio
async def test_cursor_is_committed_after_clean_run(queue_store, fake_redis):
    adapter = StaticAdapter(TriageSource.EMAIL, [_email()], cursor="200")
    empty = StaticAdapter(TriageSource.CALENDAR, cursor="c-9")

    await _service([adapter, empty], queue_store, fake_redis).run_triage_sync(USER)

    assert adapter.commits == ["200"]
    assert empty.commits == ["c-9"]


@pytest.mark.asyncio
async def test_cursor_is_held_when_an_item_could_not_be_saved(queue_store, fake_redis):
    async def failing_upsert(user_id, item, score):
        raise DatabaseError("Query failed: deadlock detected", operation="execute")

    queue_store.upsert_if_pending = failing_upsert
    adapter = StaticAdapter(TriageSource.EMAIL, [_email()], cursor="200")

    await _service([adapter], queue_store, fake_redis).run_triage_sync(USER)

    assert adapter.commits == []


class RateLimitedOnce:
    def __init__(self):
        self.calls = 0

    async def score_text(self, prompt):
        self.calls += 1
        if self.calls == 1:
            raise RateLimitedError("OpenAI rate limit exceeded", status_code=429)
        return '{"score": 85, "reasoning": "Contract deadline"}'


class HistoryGmailClient:
    """Serves Gmail history pages keyed by the cursor they start from."""

    def __init__(self, pages):
        self.pages = pages
        self.requested: list[str] = []
        self.dropped_message_ids: list[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def list_since(self, cursor):
        self.requested.append(cursor)
        return self.pages[cursor]


@pytest.mark.asyncio
async def test_rate_limited_email_is_queued_on_the_next_run(
    queue_store, fake_redis, credentials, cursor_store, email_mirror
):
    message = GmailMessageHeader(
        id="m1",
        thread_id="t1",
        subject="Contract renewal",
        sender="dana@example.com",
        snippet="Sign by Friday",
        date="Mon, 19 Oct 2026 09:00:00 +0000",
    )
    client = HistoryGmailClient(
        {
            "100": GmailHistoryPage(messages=[message], new_cursor="200"),
            "200": GmailHistoryPage(messages=[], new_cursor="200"),
        }
    )
    cursor_store.cursors[(USER, TriageSource.EMAIL)] = "100"
    adapter = EmailAdapter(
        credentials=credentials,
        client_factory=lambda token: client,
        cursors=cursor_store,
        mirror=email_mirror,
    )
    service = _service(
        [adapter], queue_store, fake_redis, email_scorer=SemanticScorer(RateLimitedOnce())
    )

    first = await service.run_triage_sync(USER)
    assert first.errors == ["Gmail scoring: 1 item(s) rate limited"]
    assert queue_store.rows == {}
    assert cursor_store.cursors[(USER, TriageSource.EMAIL)] == "100"

    second = await service.run_triage_sync(USER)

    assert second.added == 1
    assert (USER, "email", "m1") in queue_store.rows
    assert cursor_store.cursors[(USER, TriageSource.EMAIL)] == "200"
    assert client.requested == ["100", "100"]
