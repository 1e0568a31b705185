"""In-process SharedCacheStore.

Used in development, in tests, and as the startup fallback when Redis is
unreachable and ``REDIS_STARTUP_REQUIRE_CACHE`` is false. State is local to the
process, so limits and cached responses are not shared between instances.
"""

from __future__ import annotations

import copy
import fnmatch
import logging
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class MemoryCache:
    """Dict-backed store with lazy expiry and a periodic sweep.

    Expired entries are dropped when touched, and every ``sweep_interval``
    writes a full pass removes expired keys nobody reads again (one rate
    limit counter per caller would otherwise accumulate). Values are
    deep-copied on the way in and out so callers never share mutable state
    with the store.

    Example:
        store = MemoryCache()
        await store.set("profile:42", {"name": "Ada"}, ttl=300)
        await store.incr("ratelimit:auth:10.0.0.1", ttl=300)
    """

    def __init__(
        self,
        key_prefix: str = "",
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: int = 1000,
    ) -> None:
        if sweep_interval < 1:
            msg = f"sweep_interval must be at least 1, got {sweep_interval}"
            raise ValueError(msg)
        self.key_prefix = key_prefix
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._writes = 0
        self._data: dict[str, tuple[Any, float | None]] = {}

    @property
    def size(self) -> int:
        """Entries held, expired ones included until swept."""
        return len(self._data)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _live(self, full_key: str) -> tuple[Any, float | None] | None:
        entry = self._data.get(full_key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[full_key]
            return None
        return entry

    def _expiry(self, ttl: int | None) -> float | None:
        return self._clock() + ttl if ttl is not None else None

    def _record_write(self) -> None:
        self._writes += 1
        if self._writes >= self._sweep_interval:
            self._writes = 0
            self.purge_expired()

    def purge_expired(self) -> int:
        """Drop every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [
            k
            for k, (_, expires_at) in self._data.items()
            if expires_at is not None and now >= expires_at
        ]
        for k in expired:
            del self._data[k]
        if expired:
            logger.debug("Purged expired cache entries", extra={"count": len(expired)})
        return len(expired)

    async def connect(self) -> None:
        logger.info("Using in-process cache store")

    async def disconnect(self) -> None:
        self._data.clear()

    async def get(self, key: str) -> Any | None:
        entry = self._live(self._key(key))
        return copy.deepcopy(entry[0]) if entry else None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        self._data[self._key(key)] = (copy.deepcopy(value), self._expiry(ttl))
        self._record_write()
        return True

    async def delete(self, key: str) -> bool:
        full_key = self._key(key)
        existed = self._live(full_key) is not None
        self._data.pop(full_key, None)
        return existed

    async def delete_pattern(self, pattern: str) -> int:
        full_pattern = self._key(pattern)
        matches = [
            k for k in list(self._data) if fnmatch.fnmatchcase(k, full_pattern) and self._live(k)
        ]
        for k in matches:
            del self._data[k]
        return len(matches)

    async def incr(self, key: str, ttl: int) -> int:
        full_key = self._key(key)
        entry = self._live(full_key)
        if entry is None:
            self._data[full_key] = (1, self._expiry(ttl))
            self._record_write()
            return 1
        value, expires_at = entry
        value = int(value) + 1
        self._data[full_key] = (value, expires_at)
        return value

    async def exists(self, key: str) -> bool:
        return self._live(self._key(key)) is not None

    async def ttl(self, key: str) -> int:
        entry = self._live(self._key(key))
        if entry is None:
            return -2
        _, expires_at = entry
        if expires_at is None:
            return -1
        return max(0, int(expires_at - self._clock()))

    async def health_check(self) -> bool:
        return True
