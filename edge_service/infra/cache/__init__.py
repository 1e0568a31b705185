"""Shared cache store and HTTP response caching."""

from __future__ import annotations

from edge_service.infra.cache.invalidation import CacheInvalidator
from edge_service.infra.cache.keys import (
    CacheKeyPrefix,
    build_cache_key,
    etag_key,
    meta_key,
    user_cache_patterns,
)
from edge_service.infra.cache.memory import MemoryCache
from edge_service.infra.cache.redis import RedisCache
from edge_service.infra.cache.response import ResponseCache, compute_etag, parse_if_none_match
from edge_service.infra.cache.store import SharedCacheStore

__all__ = [
    "CacheInvalidator",
    "CacheKeyPrefix",
    "MemoryCache",
    "RedisCache",
    "ResponseCache",
    "SharedCacheStore",
    "build_cache_key",
    "compute_etag",
    "etag_key",
    "meta_key",
    "parse_if_none_match",
    "user_cache_patterns",
]
