# engagement/services/redis_client.py
"""
Shared Redis connection for presence and the real-time bus.

Presence needs definite answers and maps errors itself, so it takes the raw
client from get_client(). Fire-and-forget callers (persist markers, event
publishing) go through the wrappers below, which degrade to a falsy result
instead of raising.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from engagement.config import settings
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled Redis client shared by the presence tracker and the pub/sub bus."""

    def __init__(self):
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return

        logger.info("Connecting to presence store", max_connections=settings.REDIS_MAX_CONNECTIONS)
        try:
            self.pool = ConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=5,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)
            await self.client.ping()
        except Exception as e:
            logger.error("Presence store connection failed", error=str(e))
            raise RuntimeError("Redis initialization failed") from e

        self._initialized = True
        logger.info("Presence store connected")

    async def close(self) -> None:
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))
        finally:
            self._initialized = False

    async def get_client(self) -> redis.Redis:
        """Raw client, initializing lazily (e.g. in the worker process)."""
        if not self._initialized:
            logger.warning("Redis not initialized, connecting on demand")
            await self.initialize()
        return self.client

    async def _degrading(self, op: str, call: Callable[[redis.Redis], Awaitable[Any]], default: Any, **log_fields):
        try:
            client = await self.get_client()
            return await call(client)
        except Exception as e:
            logger.error(f"Redis {op} failed", error=str(e), **log_fields)
            return default

    async def ping(self) -> bool:
        return bool(await self._degrading("PING", lambda c: c.ping(), False))

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool:
        """SET NX EX. True only for the caller that created the key."""
        result = await self._degrading(
            "SET NX", lambda c: c.set(key, value, nx=True, ex=ttl_s), None, key=key[:40]
        )
        return bool(result)

    async def publish(self, channel: str, message: str) -> int:
        """Receiver count; 0 when the bus is unreachable."""
        return int(await self._degrading("PUBLISH", lambda c: c.publish(channel, message), 0, channel=channel))


fast_redis = FastRedisClient()
