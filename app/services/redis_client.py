# app/services/redis_client.py
"""
Pooled async Redis client used as the durable keyed store.

Every command degrades to a sentinel instead of raising: False for writes,
None for reads whose emptiness is meaningful (range scans, set members),
so repositories can tell "no data" apart from "store unavailable".
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class FastRedisClient:
    """Pooled Redis client backing the message, channel and insight stores."""

    def __init__(
        self,
        url: str | None = None,
        max_connections: int | None = None,
        key_prefix: str | None = None,
    ):
        self.url = (url or settings.REDIS_URL).strip()
        self.max_connections = max_connections or settings.REDIS_MAX_CONNECTIONS
        self.key_prefix = settings.REDIS_KEY_PREFIX if key_prefix is None else key_prefix
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._initialized = False

    async def initialize(self):
        """Open the pool and verify it with a ping."""
        if self._initialized:
            return

        try:
            logger.info("Connecting to Redis", url_preview=self.url[:30] + "...", key_prefix=self.key_prefix)

            self.pool = ConnectionPool.from_url(
                self.url,
                max_connections=self.max_connections,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)
            await self.client.ping()

            self._initialized = True
            logger.info("Redis store ready", max_connections=self.max_connections)

        except Exception as e:
            logger.error("Redis initialization failed", error=str(e), error_type=type(e).__name__)
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Redis store closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _run(
        self,
        command: str,
        key: str,
        fallback: T,
        call: Callable[[redis.Redis], Awaitable[Any]],
    ) -> T:
        """Run one command lazily connecting first; log and return fallback on any error."""
        try:
            if not self._initialized:
                logger.warning("Redis not initialized, connecting lazily", command=command)
                await self.initialize()
            return await call(self.client)
        except Exception as e:
            logger.error(
                "Redis command failed",
                command=command,
                key=key[:40],
                error=str(e),
                error_type=type(e).__name__,
            )
            return fallback

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        async def call(client):
            return bool(await client.ping())

        return await self._run("PING", "", False, call)

    async def get(self, key: str) -> str | None:
        async def call(client):
            return await client.get(self._key(key)) or None

        return await self._run("GET", key, None, call)

    async def mget(self, keys: list[str]) -> list[str | None]:
        """Several values in one round trip; on failure every slot is None."""
        if not keys:
            return []

        async def call(client):
            return list(await client.mget([self._key(k) for k in keys]))

        return await self._run("MGET", keys[0], [None] * len(keys), call)

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        async def call(client):
            if ttl_s:
                return bool(await client.setex(self._key(key), ttl_s, value))
            return bool(await client.set(self._key(key), value))

        return await self._run("SET", key, False, call)

    async def delete(self, key: str) -> bool:
        async def call(client):
            return await client.delete(self._key(key)) > 0

        return await self._run("DEL", key, False, call)

    # ------------------------------------------------------------------
    # Sorted sets (time indexes)
    # ------------------------------------------------------------------

    async def zadd(self, key: str, mapping: dict[str, float]) -> bool:
        async def call(client):
            await client.zadd(self._key(key), mapping)
            return True

        return await self._run("ZADD", key, False, call)

    async def zrem(self, key: str, *members: str) -> bool:
        async def call(client):
            await client.zrem(self._key(key), *members)
            return True

        return await self._run("ZREM", key, False, call)

    async def zrange_by_score(
        self,
        key: str,
        min_score: float,
        max_score: float,
        offset: int | None = None,
        count: int | None = None,
    ) -> list[str] | None:
        """Members with min_score <= score <= max_score, ascending; None on failure."""

        async def call(client):
            if offset is not None and count is not None:
                result = await client.zrangebyscore(
                    self._key(key), min_score, max_score, start=offset, num=count
                )
            else:
                result = await client.zrangebyscore(self._key(key), min_score, max_score)
            return [str(item) for item in result]

        return await self._run("ZRANGEBYSCORE", key, None, call)

    async def zcard(self, key: str) -> int:
        async def call(client):
            return int(await client.zcard(self._key(key)))

        return await self._run("ZCARD", key, 0, call)

    # ------------------------------------------------------------------
    # Sets (membership indexes)
    # ------------------------------------------------------------------

    async def sadd(self, key: str, *members: str) -> bool:
        async def call(client):
            await client.sadd(self._key(key), *members)
            return True

        return await self._run("SADD", key, False, call)

    async def srem(self, key: str, *members: str) -> bool:
        async def call(client):
            await client.srem(self._key(key), *members)
            return True

        return await self._run("SREM", key, False, call)

    async def smembers(self, key: str) -> set[str] | None:
        async def call(client):
            return {str(item) for item in await client.smembers(self._key(key))}

        return await self._run("SMEMBERS", key, None, call)


# Global instance
fast_redis = FastRedisClient()
