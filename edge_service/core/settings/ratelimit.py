"""Rate limiting settings and the route rule table.

Each traffic class is a ``RateLimitRule``. Rules are matched in order against
the request method and normalized path; the first match wins and unmatched
requests fall back to ``default_rule``.

Rules can be overridden from ``conf/ratelimit.yaml`` or as a JSON list in
``RATE_LIMIT_RULES``:

    RATE_LIMIT_RULES='[{"name": "auth", "methods": ["POST"],
                        "pattern": "/api/auth/*", "max_requests": 5,
                        "window_seconds": 300}]'
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_ratelimit_yaml_source

KeyBy = Literal["ip", "user"]


class RateLimitRule(BaseModel):
    """A named limiter for one traffic class."""

    model_config = {"frozen": True}

    name: str = Field(min_length=1, max_length=50, description="Limiter name (metrics label)")
    methods: list[str] = Field(
        default_factory=list,
        description="HTTP methods this rule applies to (empty = all methods)",
    )
    pattern: str = Field(
        default="/*",
        pattern=r"^/.*$",
        description="Path pattern: literal segments, :param, * (one segment), trailing * (rest)",
    )
    max_requests: int = Field(ge=1, le=1_000_000, description="Requests allowed per window")
    window_seconds: int = Field(ge=1, le=86_400, description="Fixed window length in seconds")
    key_by: KeyBy = Field(
        default="ip",
        description="Identify callers by client IP or authenticated user (user falls back to IP)",
    )
    key_prefix: str | None = Field(
        default=None,
        description="Counter namespace; defaults to the rule name",
    )
    message: str = Field(
        default="Too many requests, please try again later.",
        description="Message returned in the 429 body",
    )

    @field_validator("methods", mode="before")
    @classmethod
    def _upper_methods(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [part.strip() for part in v.split(",") if part.strip()]
        if isinstance(v, list):
            return [str(m).upper() for m in v]
        return v

    @property
    def namespace(self) -> str:
        return self.key_prefix or self.name


DEFAULT_API_RULE: dict[str, Any] = {
    "name": "api",
    "pattern": "/*",
    "max_requests": 100,
    "window_seconds": 60,
    "message": "Too many requests, please try again later.",
}

DEFAULT_ROUTE_RULES: list[dict[str, Any]] = [
    {
        "name": "auth",
        "methods": ["POST"],
        "pattern": "/api/auth/*",
        "max_requests": 10,
        "window_seconds": 300,
        "key_by": "ip",
        "message": "Too many authentication attempts, please try again later.",
    },
    {
        "name": "swipe",
        "methods": ["POST"],
        "pattern": "/api/swipes/*",
        "max_requests": 50,
        "window_seconds": 60,
        "key_by": "user",
        "message": "You are swiping too fast, please slow down.",
    },
    {
        "name": "messages",
        "methods": ["POST"],
        "pattern": "/api/chat/*",
        "max_requests": 30,
        "window_seconds": 60,
        "key_by": "user",
        "key_prefix": "msg",
        "message": "Too many messages, please slow down.",
    },
    {
        "name": "upload",
        "methods": ["POST", "PUT"],
        "pattern": "/api/upload/*",
        "max_requests": 20,
        "window_seconds": 3600,
        "key_by": "user",
        "message": "Upload limit reached, please try again later.",
    },
    {
        "name": "search",
        "methods": ["GET"],
        "pattern": "/api/search/*",
        "max_requests": 30,
        "window_seconds": 60,
        "key_by": "user",
        "message": "Too many search requests, please try again later.",
    },
    {
        "name": "report",
        "methods": ["POST"],
        "pattern": "/api/safety/report/*",
        "max_requests": 10,
        "window_seconds": 3600,
        "key_by": "user",
        "message": "Too many reports submitted, please try again later.",
    },
    {
        "name": "payment",
        "methods": ["POST"],
        "pattern": "/api/payments/*",
        "max_requests": 10,
        "window_seconds": 60,
        "key_by": "user",
        "message": "Too many payment requests, please try again later.",
    },
]


class RateLimitSettings(BaseSettings):
    """Distributed rate limiting configuration.

    Environment variables use RATE_LIMIT_ prefix.
    Example: RATE_LIMIT_ENABLED=false, RATE_LIMIT_TRUST_FORWARDED_FOR=false
    """

    enabled: bool = Field(default=True, description="Enable the rate limit middleware")
    default_rule: RateLimitRule = Field(
        default_factory=lambda: RateLimitRule(**DEFAULT_API_RULE),
        description="Rule applied when no route rule matches",
    )
    rules: list[RateLimitRule] = Field(
        default_factory=lambda: [RateLimitRule(**rule) for rule in DEFAULT_ROUTE_RULES],
        description="Ordered route rules; first match wins",
    )
    exempt_paths: list[str] = Field(
        default_factory=lambda: [
            "/health",
            "/health/",
            "/health/resilience",
            "/metrics",
            "/docs",
            "/redoc",
            "/openapi.json",
        ],
        description="Paths never rate limited",
    )
    trust_forwarded_for: bool = Field(
        default=True,
        description="Use the first X-Forwarded-For address as the client IP",
    )
    failure_threshold: int = Field(
        default=5,
        ge=1,
        le=1000,
        description="Consecutive store failures before protection is reported DEGRADED",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
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
            create_ratelimit_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
