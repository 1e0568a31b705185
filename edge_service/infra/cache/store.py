"""Shared cache store interface.

The store is the only state shared between process instances. Every consumer
(rate limiter, response cache, invalidator) talks to it through this protocol
so the Redis client and the in-process fallback are interchangeable.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SharedCacheStore(Protocol):
    """Key/value store with TTLs and an atomic counter.

    Values are JSON-serializable objects; strings are stored as-is. Methods
    raise on connectivity problems; callers decide whether to absorb them.
    """

    async def get(self, key: str) -> Any | None:
        """Return the stored value or None when the key is absent or expired."""
        ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store ``value`` for ``ttl`` seconds (no expiry when None)."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        ...

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the count deleted."""
        ...

    async def incr(self, key: str, ttl: int) -> int:
        """Atomically increment ``key`` and return the new value.

        The TTL is applied only when the increment creates the key, so a
        counter expires ``ttl`` seconds after its first increment.
        """
        ...

    async def exists(self, key: str) -> bool: ...

    async def ttl(self, key: str) -> int:
        """Remaining seconds to live; -1 without expiry, -2 when absent."""
        ...

    async def health_check(self) -> bool: ...
