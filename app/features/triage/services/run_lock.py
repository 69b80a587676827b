"""
Per-user serialization of triage runs.

A short-lived Redis key marks a run in progress. If Redis is unreachable the
run proceeds unlocked; the queue's pending guard still prevents a run from
overwriting reviewed entries.
"""

from contextlib import asynccontextmanager
from uuid import uuid4

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.infrastructure.redis_client import RedisUnavailableError, fast_redis

logger = get_logger(__name__)

LOCK_KEY_PREFIX = "triage_sync_lock"


def lock_key(user_id: str) -> str:
    return f"{LOCK_KEY_PREFIX}:{user_id}"


class TriageRunLock:
    def __init__(self, redis_client=None, ttl_seconds: int | None = None):
        self._redis = redis_client or fast_redis
        self._ttl = ttl_seconds or settings.TRIAGE_SYNC_LOCK_TTL_SECONDS

    @asynccontextmanager
    async def hold(self, user_id: str):
        """
        Yields True when this caller may run (lock taken, or Redis down),
        False when another run for the same user holds the lock.
        """
        key = lock_key(user_id)
        token = str(uuid4())

        try:
            acquired = await self._redis.set_if_absent(key, token, self._ttl)
        except RedisUnavailableError as e:
            logger.warning(
                "Run lock unavailable, proceeding unlocked", user_id=user_id, error=str(e)
            )
            yield True
            return

        if not acquired:
            logger.info("Triage sync already running", user_id=user_id)
            yield False
            return

        try:
            yield True
        finally:
            await self._redis.release_if_owner(key, token)
