"""Redis-backed SharedCacheStore.

Provides:
- Connection pooling driven by RedisSettings
- Retry with backoff on transient connection/timeout errors (idempotent commands)
- JSON serialization of every stored value, strings included
- Atomic increment-with-TTL through a Lua script
- Namespacing of every key with ``REDIS_KEY_PREFIX``
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, cast

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from edge_service.infra.resilience.retry import RetryExecutor, RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from edge_service.core.settings.redis import RedisSettings

logger = logging.getLogger(__name__)

# INCR creates missing keys at 1; the expiry is set only then, which gives a
# fixed window that starts at the first request.
INCR_WITH_TTL_SCRIPT = """
local current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return current
"""

_DELETE_BATCH = 500


class RedisCache:
    """Redis store with retry logic and connection pooling.

    Example:
        cache = RedisCache(get_redis_settings())
        await cache.connect()

        await cache.set("profile:42", {"name": "Ada"}, ttl=300)
        value = await cache.get("profile:42")
        count = await cache.incr("ratelimit:auth:10.0.0.1", ttl=300)

        await cache.disconnect()
    """

    def __init__(self, settings: RedisSettings, client: Redis | None = None) -> None:
        """Initialize the store.

        Args:
            settings: Connection, retry and key prefix settings.
            client: Pre-built client (tests); connect() then only pings it.
        """
        self.settings = settings
        self.key_prefix = settings.key_prefix
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = client
        self._retry = RetryExecutor(
            RetryPolicy(
                max_retries=settings.max_retries,
                base_delay=settings.retry_delay,
                max_delay=settings.retry_max_delay,
                exceptions=(RedisConnectionError, RedisTimeoutError),
            )
        )

    async def connect(self) -> None:
        """Create the connection pool and verify the server answers PING.

        Raises:
            RedisConnectionError: If Redis is unreachable.
        """
        logger.info(
            "Connecting to Redis",
            extra={
                "host": self.settings.host,
                "port": self.settings.port,
                "db": self.settings.db,
                "max_connections": self.settings.max_connections,
            },
        )
        if self._client is None:
            self._pool = ConnectionPool.from_url(
                self.settings.url,
                **self.settings.connection_pool_kwargs(),
            )
            self._client = Redis(connection_pool=self._pool)

        try:
            await cast("Awaitable[bool]", self._client.ping())
        except Exception:
            await self.disconnect()
            raise
        logger.info("Redis connection established successfully")

    async def disconnect(self) -> None:
        """Close the client and its pool."""
        if self._client is not None:
            await cast("Any", self._client).aclose()
            self._client = None
        if self._pool is not None:
            await cast("Any", self._pool).aclose()
            self._pool = None
        logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        """The Redis client.

        Raises:
            RuntimeError: If not connected.
        """
        if self._client is None:
            msg = "Redis client not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _run(self, name: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        return await self._retry.run(operation, name=f"redis.{name}")

    async def get(self, key: str) -> Any | None:
        raw = await self._run("get", lambda: self.client.get(self._key(key)))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return raw

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        payload = json.dumps(value, separators=(",", ":"))
        result = await self._run("set", lambda: self.client.set(self._key(key), payload, ex=ttl))
        return bool(result)

    async def delete(self, key: str) -> bool:
        result = await self._run("delete", lambda: self.client.delete(self._key(key)))
        return bool(result)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching ``pattern`` using SCAN, never KEYS."""

        async def _delete() -> int:
            deleted = 0
            batch: list[str] = []
            async for key in self.client.scan_iter(match=self._key(pattern), count=_DELETE_BATCH):
                batch.append(key)
                if len(batch) >= _DELETE_BATCH:
                    deleted += int(await self.client.delete(*batch) or 0)
                    batch = []
            if batch:
                deleted += int(await self.client.delete(*batch) or 0)
            return deleted

        return await self._run("delete_pattern", _delete)

    async def incr(self, key: str, ttl: int) -> int:
        # Not retried: a timeout may arrive after the server applied the
        # increment, and a second attempt would count the request twice.
        result = await cast(
            "Awaitable[Any]", self.client.eval(INCR_WITH_TTL_SCRIPT, 1, self._key(key), ttl)
        )
        return int(result)

    async def exists(self, key: str) -> bool:
        result = await self._run("exists", lambda: self.client.exists(self._key(key)))
        return bool(result)

    async def ttl(self, key: str) -> int:
        result = await self._run("ttl", lambda: self.client.ttl(self._key(key)))
        return int(result) if result is not None else -2

    async def health_check(self) -> bool:
        """Check that Redis answers PING.

        Returns:
            True if healthy, False otherwise.
        """
        try:
            await cast("Awaitable[bool]", self.client.ping())
        except Exception as e:
            logger.warning("Redis health check failed", extra={"error": str(e)})
            return False
        return True
