"""Best-effort cache invalidation for mutating handlers.

Invalidation never fails the request that triggered it: store errors are
logged, counted, and reported as ``False``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from edge_service.infra.cache.keys import build_cache_key, etag_key, meta_key, user_cache_patterns
from edge_service.infra.metrics.tracking import track_cache_invalidation

if TYPE_CHECKING:
    from edge_service.infra.cache.store import SharedCacheStore

logger = logging.getLogger(__name__)


class CacheInvalidator:
    """Deletes cached responses by key, by user, or by pattern.

    Example:
        invalidator = CacheInvalidator(store)
        await invalidator.invalidate("profile", {"user_id": user_id})
        await invalidator.invalidate_user_cache(user_id)
    """

    def __init__(self, store: SharedCacheStore) -> None:
        self.store = store

    async def invalidate(self, resource_type: str, params: dict[str, Any] | None = None) -> bool:
        """Remove one entry along with its freshness and ETag records."""
        cache_key = build_cache_key(resource_type, params)
        try:
            for key in (cache_key, meta_key(cache_key), etag_key(cache_key)):
                await self.store.delete(key)
        except Exception as e:
            track_cache_invalidation("key", ok=False)
            logger.error(
                "Cache invalidation failed",
                extra={"cache_key": cache_key, "error": str(e)},
                exc_info=True,
            )
            return False

        track_cache_invalidation("key", ok=True)
        logger.debug("Cache invalidated", extra={"cache_key": cache_key})
        return True

    async def invalidate_user_cache(self, user_id: str) -> bool:
        """Remove every cached entry belonging to ``user_id``."""
        deleted = 0
        try:
            for pattern in user_cache_patterns(str(user_id)):
                deleted += await self.store.delete_pattern(pattern)
        except Exception as e:
            track_cache_invalidation("user", ok=False)
            logger.error(
                "User cache invalidation failed",
                extra={"user_id": user_id, "error": str(e)},
                exc_info=True,
            )
            return False

        track_cache_invalidation("user", ok=True)
        logger.info("User cache invalidated", extra={"user_id": user_id, "deleted": deleted})
        return True

    async def invalidate_pattern(self, pattern: str) -> bool:
        """Remove every entry whose key matches the glob ``pattern``."""
        try:
            deleted = await self.store.delete_pattern(pattern)
        except Exception as e:
            track_cache_invalidation("pattern", ok=False)
            logger.error(
                "Pattern cache invalidation failed",
                extra={"pattern": pattern, "error": str(e)},
                exc_info=True,
            )
            return False

        track_cache_invalidation("pattern", ok=True)
        logger.info("Cache pattern invalidated", extra={"pattern": pattern, "deleted": deleted})
        return True
