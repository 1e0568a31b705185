"""Response cache settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_cache_yaml_source

# Seconds each resource type stays cached unless a decorator overrides it.
DEFAULT_RESOURCE_TTLS: dict[str, int] = {
    "profile": 300,
    "preferences": 600,
    "discovery": 60,
    "matches": 120,
    "conversations": 180,
    "leaderboard": 300,
}


class CacheSettings(BaseSettings):
    """HTTP response cache configuration.

    Environment variables use CACHE_ prefix.
    Example: CACHE_ENABLED=false, CACHE_DEFAULT_TTL=120
    """

    enabled: bool = Field(
        default=True,
        description="When False the cache decorators pass every request straight through",
    )
    default_ttl: int = Field(
        default=300,
        ge=1,
        le=86_400,
        description="TTL in seconds for resource types missing from resource_ttls",
    )
    resource_ttls: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_RESOURCE_TTLS),
        description="Per resource type TTL in seconds",
    )
    stale_seconds: int = Field(
        default=60,
        ge=0,
        le=86_400,
        description="Age after which a stale-while-revalidate entry triggers a refresh",
    )
    hit_cache_control: str = Field(
        default="private, max-age=60",
        description="Cache-Control header sent with cache hits",
    )

    def ttl_for(self, resource_type: str) -> int:
        return self.resource_ttls.get(resource_type, self.default_ttl)

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Customize settings source precedence: init > yaml > env > dotenv > secrets."""
        return (
            init_settings,
            create_cache_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
