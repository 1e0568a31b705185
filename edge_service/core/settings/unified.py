"""Unified settings composition for convenient access.

Composes every domain settings class into a single object. Each nested class
still loads from its own environment prefix (APP_, REDIS_, RATE_LIMIT_, ...).

Usage:
    from edge_service.core.settings import get_settings

    settings = get_settings()
    settings.ratelimit.default_rule.max_requests
    settings.cache.ttl_for("profile")
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .app import AppSettings
from .cache import CacheSettings
from .logs import LoggingSettings
from .ratelimit import RateLimitSettings
from .redis import RedisSettings
from .resilience import ResilienceSettings


class Settings(BaseSettings):
    """Unified settings composing all domain settings.

    Example:
        settings = Settings()
        assert settings.resilience.breaker_failure_threshold == 5
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    ratelimit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached unified settings.

    Returns:
        Validated and frozen Settings instance.
    """
    return Settings()
