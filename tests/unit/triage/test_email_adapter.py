import pytest

from app.db.helpers import DatabaseError
from app.features.triage.adapters import EmailAdapter, FetchResult
from app.features.triage.adapters.email_adapter import merge_full_sync
from app.features.triage.clients import GmailHistoryPage, GmailMessageHeader
from app.features.triage.domain import (
    SourceErrorKind,
    TransientProviderError,
    TriageScore,
    TriageSource,
)

USER = "user-123"
CURSOR_KEY = (USER, TriageSource.EMAIL)


def _message(message_id, subject=None):
    return GmailMessageHeader(
        id=message_id,
        thread_id=f"thread-{message_id}",
        subject=subject or f"Subject {message_id}",
        sender="Dana <dana@example.com>",
        snippet="preview",
        date="Mon, 19 Oct 2026 09:00:00 +0000",
    )


class FakeGmailClient:
    def __init__(
        self, recent=(), starred=(), history=None, cursor="500", fail_on=None, dropped=()
    ):
        self.recent = list(recent)
        self.starred = list(starred)
        # A single page, or pages keyed by the cursor they were requested from
        self.history = history
        self.cursor = cursor
        self.fail_on = fail_on
        self.dropped_message_ids = list(dropped)
        self.calls: list[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    def _record(self, name):
        self.calls.append(name)
        if self.fail_on == name:
            raise TransientProviderError(f"{name} failed (HTTP 503): backend error")

    async def list_recent(self, n):
        self._record("list_recent")
        return self.recent[:n]

    async def list_starred(self, n):
        self._record("list_starred")
        return self.starred[:n]

    async def list_since(self, cursor):
        self._record("list_since")
        if isinstance(self.history, dict):
            return self.history[cursor]
        return self.history

    async def current_cursor(self):
        self._record("current_cursor")
        return self.cursor


def _adapter(client, credentials, cursor_store, email_mirror):
    return EmailAdapter(
        credentials=credentials,
        client_factory=lambda token: client,
        cursors=cursor_store,
        mirror=email_mirror,
    )


@pytest.mark.asyncio
async def test_first_run_full_sync_proposes_cursor(credentials, cursor_store, email_mirror):
    client = FakeGmailClient(recent=[_message("a"), _message("b")], starred=[_message("c")])
    adapter = _adapter(client, credentials, cursor_store, email_mirror)

    result = await adapter.fetch(USER)

    assert result.error is None
    assert [item.source_id for item in result.items] == ["a", "b", "c"]
    assert "list_since" not in client.calls
    assert result.cursor == "500"
    assert CURSOR_KEY not in cursor_store.cursors

    await adapter.commit(USER, result)

    assert cursor_store.cursors[CURSOR_KEY] == "500"


@pytest.mark.asyncio
async def test_incremental_sync_returns_new_arrivals(credentials, cursor_store, email_mirror):
    cursor_store.cursors[CURSOR_KEY] = "400"
    page = GmailHistoryPage(messages=[_message("new-1")], new_cursor="450")
    client = FakeGmailClient(history=page)
    adapter = _adapter(client, credentials, cursor_store, email_mirror)

    result = await adapter.fetch(USER)

    assert [item.source_id for item in result.items] == ["new-1"]
    assert result.items[0].metadata.is_starred is False
    assert client.calls == ["list_since"]
    # Not saved until the items have been scored and queued
    assert result.cursor == "450"
    assert cursor_store.cursors[CURSOR_KEY] == "400"

    await adapter.commit(USER, result)

    assert cursor_store.cursors[CURSOR_KEY] == "450"


@pytest.mark.asyncio
async def test_expired_cursor_falls_back_to_full_sync(credentials, cursor_store, email_mirror):
    cursor_store.cursors[CURSOR_KEY] = "stale"
    client = FakeGmailClient(
        recent=[_message("a"), _message("b")],
        starred=[_message("b")],
        history=GmailHistoryPage(expired=True),
        cursor="900",
    )
    adapter = _adapter(client, credentials, cursor_store, email_mirror)

    cold = await _adapter(
        FakeGmailClient(recent=[_message("a"), _message("b")], starred=[_message("b")]),
        credentials,
        type(cursor_store)(),
        type(email_mirror)(),
    ).fetch(USER)
    result = await adapter.fetch(USER)

    assert cursor_store.cleared == [CURSOR_KEY]
    assert CURSOR_KEY not in cursor_store.cursors
    assert result.cursor == "900"
    assert {i.source_id for i in result.items} == {i.source_id for i in cold.items}
    assert client.calls[0] == "list_since"
    assert "current_cursor" in client.calls


def test_merge_marks_starred_and_dedupes():
    items = merge_full_sync([_message("a"), _message("b")], [_message("b"), _message("c")])

    assert [item.source_id for item in items] == ["a", "b", "c"]
    assert {item.source_id: item.metadata.is_starred for item in items} == {
        "a": False,
        "b": True,
        "c": True,
    }


@pytest.mark.asyncio
async def test_starred_flip_refreshes_pending_entry_without_duplicates(
    credentials, cursor_store, email_mirror, queue_store
):
    first = FakeGmailClient(recent=[_message("a"), _message("b")], starred=[])
    first_result = await _adapter(first, credentials, cursor_store, email_mirror).fetch(USER)
    for item in first_result.items:
        await queue_store.upsert_if_pending(USER, item, TriageScore(70, "x"))

    # Force the second run down the full-sync path as well
    cursor_store.cursors.clear()
    second = FakeGmailClient(recent=[_message("a"), _message("b")], starred=[_message("b")])
    result = await _adapter(second, credentials, cursor_store, email_mirror).fetch(USER)
    for item in result.items:
        await queue_store.upsert_if_pending(USER, item, TriageScore(70, "x"))

    assert len(queue_store.rows) == 2
    row = queue_store.rows[(USER, "email", "b")]
    assert row["source_metadata"]["is_starred"] is True
    assert email_mirror.rows["b"]["is_starred"] is True
    assert email_mirror.rows["a"]["is_starred"] is False


@pytest.mark.asyncio
async def test_full_sync_clears_archived_flag(credentials, cursor_store, email_mirror):
    email_mirror.rows["a"] = {"is_starred": False, "is_archived": True}
    client = FakeGmailClient(recent=[_message("a")])

    await _adapter(client, credentials, cursor_store, email_mirror).fetch(USER)

    assert email_mirror.rows["a"]["is_archived"] is False


@pytest.mark.asyncio
async def test_incremental_sync_keeps_existing_mirror_flags(
    credentials, cursor_store, email_mirror
):
    email_mirror.rows["a"] = {"is_starred": True, "is_archived": True}
    cursor_store.cursors[CURSOR_KEY] = "400"
    page = GmailHistoryPage(messages=[_message("a")], new_cursor="401")

    adapter = _adapter(FakeGmailClient(history=page), credentials, cursor_store, email_mirror)
    await adapter.fetch(USER)

    assert email_mirror.rows["a"] == {"is_starred": True, "is_archived": True}


@pytest.mark.asyncio
async def test_missing_token_is_not_connected(credentials, cursor_store, email_mirror):
    credentials.tokens.clear()
    client = FakeGmailClient()
    adapter = _adapter(client, credentials, cursor_store, email_mirror)

    result = await adapter.fetch(USER)

    assert result.items == []
    assert result.error.kind is SourceErrorKind.NOT_CONNECTED
    assert client.calls == []


@pytest.mark.asyncio
async def test_provider_failure_is_returned_not_raised(credentials, cursor_store, email_mirror):
    client = FakeGmailClient(recent=[_message("a")], fail_on="list_starred")

    result = await _adapter(client, credentials, cursor_store, email_mirror).fetch(USER)

    assert result.items == []
    assert result.error.kind is SourceErrorKind.TRANSIENT
    assert "HTTP 503" in result.error.message
    assert CURSOR_KEY not in cursor_store.cursors


@pytest.mark.asyncio
async def test_recent_failure_waits_for_starred_listing(credentials, cursor_store, email_mirror):
    client = FakeGmailClient(starred=[_message("c")], fail_on="list_recent")

    result = await _adapter(client, credentials, cursor_store, email_mirror).fetch(USER)

    assert result.error.kind is SourceErrorKind.TRANSIENT
    assert "list_recent failed" in result.error.message
    assert client.calls == ["list_recent", "list_starred"]
    assert result.cursor is None


@pytest.mark.asyncio
async def test_unchanged_history_cursor_is_not_rewritten(credentials, cursor_store, email_mirror):
    cursor_store.cursors[CURSOR_KEY] = "400"
    page = GmailHistoryPage(messages=[], new_cursor="400")

    adapter = _adapter(FakeGmailClient(history=page), credentials, cursor_store, email_mirror)
    result = await adapter.fetch(USER)

    assert result.items == []
    assert result.cursor is None


@pytest.mark.asyncio
@pytest.mark.parametrize("incremental", [True, False])
async def test_dropped_headers_hold_the_cursor(
    incremental, credentials, cursor_store, email_mirror
):
    if incremental:
        cursor_store.cursors[CURSOR_KEY] = "400"
    page = GmailHistoryPage(messages=[_message("m1")], new_cursor="450")
    client = FakeGmailClient(recent=[_message("m1")], history=page, dropped=["m2"])
    adapter = _adapter(client, credentials, cursor_store, email_mirror)

    result = await adapter.fetch(USER)
    await adapter.commit(USER, result)

    assert [item.source_id for item in result.items] == ["m1"]
    assert result.cursor is None
    assert cursor_store.cursors.get(CURSOR_KEY) == ("400" if incremental else None)


@pytest.mark.asyncio
async def test_cursor_save_failure_is_logged_not_raised(credentials, email_mirror):
    class BrokenCursorStore:
        async def set_cursor(self, user_id, source, position):
            raise DatabaseError("connection lost", operation="set_cursor")

    adapter = _adapter(FakeGmailClient(), credentials, BrokenCursorStore(), email_mirror)

    await adapter.commit(USER, FetchResult(cursor="500"))
