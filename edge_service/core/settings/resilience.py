"""Circuit breaker and retry defaults."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_resilience_yaml_source


class ResilienceSettings(BaseSettings):
    """Defaults for breakers created by the registry and for with_retry.

    Environment variables use RESILIENCE_ prefix.
    Example: RESILIENCE_BREAKER_FAILURE_THRESHOLD=10, RESILIENCE_RETRY_MAX_RETRIES=5
    """

    # ──────────────────────────────────────────────────────────────
    # Circuit breaker
    # ──────────────────────────────────────────────────────────────

    breaker_failure_threshold: int = Field(
        default=5, ge=1, le=1000, description="Consecutive failures that open a breaker"
    )
    breaker_success_threshold: int = Field(
        default=2, ge=1, le=100, description="Half-open successes needed to close a breaker"
    )
    breaker_cooldown: float = Field(
        default=30.0, gt=0.0, le=3600.0, description="Seconds a breaker stays open"
    )
    breaker_half_open_max_calls: int = Field(
        default=1, ge=1, le=100, description="Concurrent probe calls allowed while half-open"
    )

    # ──────────────────────────────────────────────────────────────
    # Retry
    # ──────────────────────────────────────────────────────────────

    retry_max_retries: int = Field(
        default=3, ge=0, le=20, description="Retries after the first attempt"
    )
    retry_base_delay: float = Field(
        default=1.0, ge=0.0, le=60.0, description="Delay in seconds before the first retry"
    )
    retry_max_delay: float = Field(
        default=30.0, ge=0.0, le=600.0, description="Upper bound on a single retry delay"
    )
    retry_jitter: bool = Field(default=True, description="Scale delays by a random 0.5-1.0 factor")

    model_config = SettingsConfigDict(
        env_prefix="RESILIENCE_",
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
            create_resilience_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
