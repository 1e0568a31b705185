"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process. In tests, clear the cache to force a reload:

    get_ratelimit_settings.cache_clear()

or construct a settings object directly with overrides:

    settings = RateLimitSettings(enabled=False)
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .cache import CacheSettings
from .logs import LoggingSettings
from .ratelimit import RateLimitSettings
from .redis import RedisSettings
from .resilience import ResilienceSettings
from .unified import get_settings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Get cached application settings.

    Returns:
        Validated and frozen AppSettings instance.
    """
    return AppSettings()


@lru_cache(maxsize=1)
def get_redis_settings() -> RedisSettings:
    """Get cached Redis settings.

    Returns:
        Validated and frozen RedisSettings instance.
    """
    return RedisSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_ratelimit_settings() -> RateLimitSettings:
    """Get cached rate limiting settings.

    Returns:
        Validated and frozen RateLimitSettings instance.
    """
    return RateLimitSettings()


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """Get cached response cache settings."""
    return CacheSettings()


@lru_cache(maxsize=1)
def get_resilience_settings() -> ResilienceSettings:
    """Get cached circuit breaker and retry settings."""
    return ResilienceSettings()


def clear_all_caches() -> None:
    """Clear every cached settings loader (tests and config reloads)."""
    get_app_settings.cache_clear()
    get_redis_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_ratelimit_settings.cache_clear()
    get_cache_settings.cache_clear()
    get_resilience_settings.cache_clear()
    get_settings.cache_clear()
