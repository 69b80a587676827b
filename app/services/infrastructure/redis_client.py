# app/services/infrastructure/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Delete the key only if it still holds our token
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisUnavailableError(ConnectionError):
    """Raised when Redis cannot be reached."""


class FastRedisClient:
    """Pooled async Redis client with fallback-friendly operations."""

    def __init__(self, url: str | None = None):
        self.url = url
        self.pool = None
        self.client = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        redis_url = self.url or settings.REDIS_URL
        try:
            logger.info("Attempting Redis connection", url_preview=redis_url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=20,
                retry_on_timeout=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Fast Redis client initialized successfully", max_connections=20)

        except (redis.RedisError, OSError) as e:
            logger.error("Failed to initialize fast Redis client", error=str(e))
            self._initialized = False
            raise RedisUnavailableError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
        except redis.RedisError as e:
            logger.error("Error closing Redis client", error=str(e))
        finally:
            self._initialized = False
            logger.info("Fast Redis client closed")

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            return bool(await self.client.ping())
        except (redis.RedisError, RedisUnavailableError) as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool:
        """
        SET key value NX EX ttl.

        Returns:
            True if the key was set, False if it already existed

        Raises:
            RedisUnavailableError: If Redis cannot be reached
        """
        try:
            await self._ensure_initialized()
            result = await self.client.set(key, value, nx=True, ex=ttl_s)
            return bool(result)
        except redis.RedisError as e:
            logger.error("Redis SET NX failed", key=key[:40], error=str(e))
            raise RedisUnavailableError(str(e)) from e

    async def release_if_owner(self, key: str, value: str) -> bool:
        """Delete a lock key only if it still holds `value`."""
        try:
            await self._ensure_initialized()
            result = await self.client.eval(RELEASE_LOCK_SCRIPT, 1, key, value)
            return bool(result)
        except (redis.RedisError, RedisUnavailableError) as e:
            logger.error("Redis lock release failed", key=key[:40], error=str(e))
            return False


# Global instance
fast_redis = FastRedisClient()
