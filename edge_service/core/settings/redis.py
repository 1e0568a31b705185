"""Redis connection settings for the shared cache store."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote, urlparse

from pydantic import Field, SecretStr, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_redis_yaml_source


class RedisSettings(BaseSettings):
    """Redis settings for the store shared by every process instance.

    Environment variables use REDIS_ prefix.
    Example: REDIS_URL="redis://localhost:6379/0"

    Either provide REDIS_URL (components are parsed from it) or the individual
    components (the URL is built from them).
    """

    # ──────────────────────────────────────────────────────────────
    # Connection configuration
    # ──────────────────────────────────────────────────────────────

    redis_url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection URL (redis://[username:password@]host:port/db)",
    )
    host: str = Field(default="localhost", description="Redis server hostname")
    port: int = Field(default=6379, ge=1, le=65535, description="Redis server port")
    db: int = Field(default=0, ge=0, le=15, description="Redis database number")
    username: str | None = Field(default=None, description="Redis ACL username")
    password: SecretStr | None = Field(default=None, description="Redis password")
    ssl_enabled: bool = Field(default=False, description="Use rediss:// (TLS)")

    # ──────────────────────────────────────────────────────────────
    # Connection pool settings
    # ──────────────────────────────────────────────────────────────

    max_connections: int = Field(default=50, ge=1, le=1000)
    socket_timeout: float = Field(default=2.0, ge=0.1, le=30.0)
    socket_connect_timeout: float = Field(default=5.0, ge=0.1, le=30.0)
    socket_keepalive: bool = Field(default=True)
    health_check_interval: int = Field(default=30, ge=0, le=300)

    # ──────────────────────────────────────────────────────────────
    # Transient error retries (per store command)
    # ──────────────────────────────────────────────────────────────

    max_retries: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Retries for a store command after a connection/timeout error",
    )
    retry_delay: float = Field(
        default=0.05,
        ge=0.0,
        le=5.0,
        description="Base delay in seconds between store command retries",
    )
    retry_max_delay: float = Field(default=0.5, ge=0.0, le=30.0)

    # ──────────────────────────────────────────────────────────────
    # Startup behaviour and namespacing
    # ──────────────────────────────────────────────────────────────

    startup_require_cache: bool = Field(
        default=False,
        description="Fail startup if Redis is unreachable (False = fall back to in-process store)",
    )
    key_prefix: str = Field(
        default="edge:",
        max_length=100,
        pattern=r"^([a-zA-Z0-9_-]+:?)?$",
        description="Namespace prepended to every key the store touches",
    )

    @model_validator(mode="after")
    def _apply_url(self) -> RedisSettings:
        """Populate component fields from redis_url when it is provided."""
        if self.redis_url:
            parsed = urlparse(self.redis_url)
            if parsed.hostname:
                object.__setattr__(self, "host", parsed.hostname)
            if parsed.port:
                object.__setattr__(self, "port", parsed.port)
            if parsed.path and len(parsed.path) > 1:
                try:
                    object.__setattr__(self, "db", int(parsed.path.lstrip("/")))
                except ValueError:
                    pass
            if parsed.username:
                object.__setattr__(self, "username", parsed.username)
            if parsed.password:
                object.__setattr__(self, "password", SecretStr(parsed.password))
            if parsed.scheme == "rediss":
                object.__setattr__(self, "ssl_enabled", True)
        return self

    @computed_field
    @property
    def url(self) -> str:
        """Redis URL built from the component fields."""
        scheme = "rediss" if self.ssl_enabled else "redis"
        auth = ""
        if self.username or self.password:
            user = quote(self.username) if self.username else ""
            secret = quote(self.password.get_secret_value()) if self.password else ""
            auth = f"{user}:{secret}@" if user else f":{secret}@"
        return f"{scheme}://{auth}{self.host}:{self.port}/{self.db}"

    def connection_pool_kwargs(self) -> dict[str, Any]:
        """Return kwargs for redis.asyncio.ConnectionPool.from_url()."""
        kwargs: dict[str, Any] = {
            "max_connections": self.max_connections,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "socket_keepalive": self.socket_keepalive,
            "decode_responses": True,
            "encoding": "utf-8",
        }
        if self.health_check_interval > 0:
            kwargs["health_check_interval"] = self.health_check_interval
        return kwargs

    def get_prefixed_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
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
            create_redis_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
