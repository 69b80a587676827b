import pytest

from app.auth.verify import auth_dependency
from app.features.triage.domain import QueueStatus
from app.services.infrastructure.redis_client import RedisUnavailableError


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


class FakeRedis:
    def __init__(self, available: bool = True):
        self.available = available
        self.store: dict[str, str] = {}

    async def ping(self) -> bool:
        return self.available

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool:
        if not self.available:
            raise RedisUnavailableError("connection refused")
        if key in self.store:
            return False
        self.store[key] = value
        return True

    async def release_if_owner(self, key: str, value: str) -> bool:
        if self.store.get(key) == value:
            del self.store[key]
            return True
        return False


@pytest.fixture
def fake_redis():
    return FakeRedis()


class FakeCredentials:
    def __init__(self, tokens: dict[tuple[str, str], str] | None = None):
        self.tokens = tokens or {}

    async def get_token(self, user_id: str, provider: str) -> str | None:
        return self.tokens.get((user_id, provider))

    async def list_connected_user_ids(self) -> list[str]:
        return sorted({user_id for user_id, _ in self.tokens})


@pytest.fixture
def credentials():
    return FakeCredentials(
        {
            ("user-123", "google"): "google-token",
            ("user-123", "todoist"): "todoist-token",
        }
    )


class FakeCursorStore:
    def __init__(self):
        self.cursors: dict[tuple[str, str], str] = {}
        self.cleared: list[tuple[str, str]] = []

    async def get_cursor(self, user_id, source):
        return self.cursors.get((user_id, source))

    async def set_cursor(self, user_id, source, position):
        self.cursors[(user_id, source)] = position

    async def clear_cursor(self, user_id, source):
        self.cleared.append((user_id, source))
        self.cursors.pop((user_id, source), None)


@pytest.fixture
def cursor_store():
    return FakeCursorStore()


class FakeEmailMirror:
    def __init__(self):
        self.rows: dict[str, dict] = {}

    async def upsert_messages(self, user_id, messages, starred_ids=None, *, full_sync):
        starred_ids = starred_ids or set()
        for message in messages:
            existing = self.rows.get(message.id)
            if existing is None:
                self.rows[message.id] = {
                    "is_starred": message.id in starred_ids,
                    "is_archived": False,
                }
            elif full_sync:
                existing["is_starred"] = message.id in starred_ids

    async def unarchive(self, user_id, gmail_ids):
        count = 0
        for gmail_id in gmail_ids:
            row = self.rows.get(gmail_id)
            if row and row["is_archived"]:
                row["is_archived"] = False
                count += 1
        return count


@pytest.fixture
def email_mirror():
    return FakeEmailMirror()


class FakeQueueStore:
    """In-memory triage_queue with the same pending guard as the SQL upsert."""

    def __init__(self):
        self.rows: dict[tuple[str, str, str], dict] = {}

    async def upsert_if_pending(self, user_id, item, score) -> bool:
        key = (user_id, item.source.value, item.source_id)
        row = self.rows.get(key)
        if row is not None and row["status"] != QueueStatus.PENDING:
            return False
        self.rows[key] = {
            "title": item.title,
            "snippet": item.snippet,
            "score": score.value,
            "reasoning": score.reasoning,
            "source_metadata": item.metadata.to_json(),
            "status": QueueStatus.PENDING if row is None else row["status"],
        }
        return True

    def review(self, user_id, source, source_id, status: QueueStatus) -> None:
        self.rows[(user_id, source, source_id)]["status"] = status


@pytest.fixture
def queue_store():
    return FakeQueueStore()
