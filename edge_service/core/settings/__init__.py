"""Modular Pydantic Settings v2 configuration.

Import settings via cached loaders:
    from edge_service.core.settings import get_ratelimit_settings

Or use unified settings for access to every domain:
    from edge_service.core.settings import get_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. YAML/conf.d files (optional, local/dev)
    3. Environment variables (production)
    4. .env file (development only)
    5. secrets_dir (Kubernetes/Docker secrets)
"""

from __future__ import annotations

from .app import AppSettings
from .cache import CacheSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_cache_settings,
    get_logging_settings,
    get_ratelimit_settings,
    get_redis_settings,
    get_resilience_settings,
)
from .logs import LoggingSettings
from .ratelimit import RateLimitRule, RateLimitSettings
from .redis import RedisSettings
from .resilience import ResilienceSettings
from .unified import Settings, get_settings

__all__ = [
    "AppSettings",
    "CacheSettings",
    "LoggingSettings",
    "RateLimitRule",
    "RateLimitSettings",
    "RedisSettings",
    "ResilienceSettings",
    "Settings",
    "clear_all_caches",
    "get_app_settings",
    "get_cache_settings",
    "get_logging_settings",
    "get_ratelimit_settings",
    "get_redis_settings",
    "get_resilience_settings",
    "get_settings",
]
