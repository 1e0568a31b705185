"""YAML config sources with conf.d directory support.

Each settings domain can be layered from a base file plus override files:

    conf/<domain>.yaml          base configuration
    conf/<domain>.d/*.yaml      overrides, merged alphabetically

The base directory defaults to ``conf`` and can be moved per domain with an
environment variable such as ``RATE_LIMIT_CONFIG_DIR=/etc/edge``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic_settings.sources.providers.yaml import YamlConfigSettingsSource

if TYPE_CHECKING:
    from pydantic_settings import BaseSettings


class ConfDYamlConfigSettingsSource(YamlConfigSettingsSource):
    """YAML settings source that merges a base file with a conf.d directory."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: str,
        confd_dir: str | None,
        config_dir_env: str,
        base_dir: str = "conf",
        yaml_file_encoding: str | None = "utf-8",
    ) -> None:
        config_base = Path(os.getenv(config_dir_env, base_dir))

        yaml_files: list[Path] = []
        main_file = config_base / yaml_file
        if main_file.exists():
            yaml_files.append(main_file)

        if confd_dir:
            confd_path = config_base / confd_dir
            if confd_path.is_dir():
                yaml_files.extend(sorted(confd_path.glob("*.yaml")))
                yaml_files.extend(sorted(confd_path.glob("*.yml")))
                yaml_files.extend(sorted(confd_path.glob("*.json")))

        self._yaml_files = yaml_files

        super().__init__(
            settings_cls=settings_cls,
            yaml_file=yaml_files or None,
            yaml_file_encoding=yaml_file_encoding,
        )

    def __repr__(self) -> str:
        files = ", ".join(str(f) for f in self._yaml_files)
        return f"{self.__class__.__name__}(yaml_files=[{files}])"


def _domain_source(
    settings_cls: type[BaseSettings], domain: str, env_var: str
) -> ConfDYamlConfigSettingsSource:
    return ConfDYamlConfigSettingsSource(
        settings_cls,
        yaml_file=f"{domain}.yaml",
        confd_dir=f"{domain}.d",
        config_dir_env=env_var,
    )


def create_app_yaml_source(settings_cls: type[BaseSettings]) -> ConfDYamlConfigSettingsSource:
    """Create YAML source for AppSettings (conf/app.yaml, conf/app.d/)."""
    return _domain_source(settings_cls, "app", "APP_CONFIG_DIR")


def create_redis_yaml_source(settings_cls: type[BaseSettings]) -> ConfDYamlConfigSettingsSource:
    """Create YAML source for RedisSettings (conf/redis.yaml, conf/redis.d/)."""
    return _domain_source(settings_cls, "redis", "REDIS_CONFIG_DIR")


def create_logging_yaml_source(settings_cls: type[BaseSettings]) -> ConfDYamlConfigSettingsSource:
    """Create YAML source for LoggingSettings (conf/logging.yaml, conf/logging.d/)."""
    return _domain_source(settings_cls, "logging", "LOGGING_CONFIG_DIR")


def create_ratelimit_yaml_source(
    settings_cls: type[BaseSettings],
) -> ConfDYamlConfigSettingsSource:
    """Create YAML source for RateLimitSettings (conf/ratelimit.yaml, conf/ratelimit.d/).

    The route table is the setting most often kept in a file, since it is a
    list of rules rather than a scalar.
    """
    return _domain_source(settings_cls, "ratelimit", "RATE_LIMIT_CONFIG_DIR")


def create_cache_yaml_source(settings_cls: type[BaseSettings]) -> ConfDYamlConfigSettingsSource:
    """Create YAML source for CacheSettings (conf/cache.yaml, conf/cache.d/)."""
    return _domain_source(settings_cls, "cache", "CACHE_CONFIG_DIR")


def create_resilience_yaml_source(
    settings_cls: type[BaseSettings],
) -> ConfDYamlConfigSettingsSource:
    """Create YAML source for ResilienceSettings (conf/resilience.yaml, conf/resilience.d/)."""
    return _domain_source(settings_cls, "resilience", "RESILIENCE_CONFIG_DIR")
