"""Tests for settings loading: defaults, environment overrides and conf.d YAML."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from edge_service.core.settings import (
    CacheSettings,
    RateLimitRule,
    RateLimitSettings,
    RedisSettings,
    ResilienceSettings,
    get_ratelimit_settings,
    get_settings,
)
from edge_service.infra.resilience.retry import RetryPolicy


class TestRedisSettings:
    def test_url_built_from_components(self):
        settings = RedisSettings(host="cache", port=6380, db=2)
        assert settings.url == "redis://cache:6380/2"

    def test_components_parsed_from_url(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "rediss://:s3cret@redis.internal:6390/3")

        settings = RedisSettings()

        assert settings.host == "redis.internal"
        assert settings.port == 6390
        assert settings.db == 3
        assert settings.ssl_enabled is True
        assert settings.password is not None
        assert settings.password.get_secret_value() == "s3cret"

    def test_rejects_invalid_key_prefix(self):
        with pytest.raises(ValidationError):
            RedisSettings(key_prefix="bad prefix!")


class TestRateLimitSettings:
    def test_default_route_table(self):
        settings = RateLimitSettings()

        names = [rule.name for rule in settings.rules]
        assert names == ["auth", "swipe", "messages", "upload", "search", "report", "payment"]
        assert settings.default_rule.max_requests == 100
        assert "/health" in settings.exempt_paths

    def test_methods_are_uppercased(self):
        rule = RateLimitRule(
            name="x", methods="post, put", pattern="/x", max_requests=1, window_seconds=1
        )
        assert rule.methods == ["POST", "PUT"]

    def test_namespace_defaults_to_name(self):
        rule = RateLimitRule(name="search", max_requests=1, window_seconds=1)
        assert rule.namespace == "search"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
        monkeypatch.setenv("RATE_LIMIT_FAILURE_THRESHOLD", "9")

        settings = get_ratelimit_settings()

        assert settings.enabled is False
        assert settings.failure_threshold == 9

    def test_rules_from_confd_yaml(self, monkeypatch, tmp_path):
        (tmp_path / "ratelimit.yaml").write_text("trust_forwarded_for: false\n")
        confd = tmp_path / "ratelimit.d"
        confd.mkdir()
        (confd / "10-rules.yaml").write_text(
            "rules:\n"
            "  - name: likes\n"
            "    methods: [POST]\n"
            "    pattern: /api/likes/*\n"
            "    max_requests: 5\n"
            "    window_seconds: 10\n"
            "    key_by: user\n"
        )
        monkeypatch.setenv("RATE_LIMIT_CONFIG_DIR", str(tmp_path))

        settings = RateLimitSettings()

        assert settings.trust_forwarded_for is False
        assert [rule.name for rule in settings.rules] == ["likes"]
        assert settings.rules[0].key_by == "user"

    def test_invalid_rule_rejected(self):
        with pytest.raises(ValidationError):
            RateLimitRule(name="x", max_requests=0, window_seconds=60)


class TestCacheSettings:
    def test_ttl_for_known_and_unknown_resources(self):
        settings = CacheSettings(default_ttl=42)
        assert settings.ttl_for("profile") == 300
        assert settings.ttl_for("nearby") == 42


class TestResilienceSettings:
    def test_base_delay_above_max_is_capped_by_the_policy(self):
        settings = ResilienceSettings(retry_base_delay=10, retry_max_delay=1)
        policy = RetryPolicy.from_settings(settings)
        assert [policy.backoff(n) for n in range(3)] == [1, 1, 1]

    def test_negative_delays_rejected(self):
        with pytest.raises(ValidationError, match="retry_base_delay"):
            ResilienceSettings(retry_base_delay=-1)


def test_unified_settings_compose_domains():
    settings = get_settings()

    assert settings.app.service_name == "edge-service"
    assert settings.ratelimit.enabled is True
    assert settings.resilience.breaker_failure_threshold == 5
