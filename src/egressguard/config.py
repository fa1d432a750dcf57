from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Self

import structlog
import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

logger = structlog.get_logger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_CONFIG_DIR = _PROJECT_ROOT / "config"
_CONFIG_PATH = _CONFIG_DIR / "settings.yaml"


def _current_env() -> str:
    return os.getenv("EGRESSGUARD_ENV", "dev").lower()


def _load_yaml() -> dict[str, Any]:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


def _load_env_profile() -> dict[str, Any]:
    """Load environment-specific YAML profile (dev / staging / production).

    Set ``EGRESSGUARD_ENV`` to pick the profile (defaults to ``dev``).  The
    profile is deep-merged on top of the base settings YAML so that
    per-environment overrides take precedence.
    """
    env = _current_env()
    profile_path = _CONFIG_DIR / "environments" / f"{env}.yaml"
    if profile_path.exists():
        with open(profile_path) as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded environment profile: %s (%s)", env, profile_path)
        return data
    logger.debug("No environment profile found for '%s'", env)
    return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (mutates *base*)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class _YamlProfileSource(PydanticBaseSettingsSource):
    """settings.yaml deep-merged with the active environment profile.

    Ordered below environment variables. pydantic-settings deep-merges the
    sources, so a nested env override replaces only the keys it names.
    """

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return _deep_merge(_load_yaml(), _load_env_profile())


class WhitelistSettings(BaseModel):
    # Exact match or subdomain match: "example.com" allows "api.example.com".
    domains: list[str] = Field(default=["example.com", "httpbin.org"])


class BlacklistSettings(BaseModel):
    # IPv4 only. Private ranges are also blocked structurally by the address classifier.
    ip_ranges: list[str] = Field(
        default=["127.0.0.0/8", "10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16"]
    )
    # Hostnames or IP literals, e.g. cloud metadata endpoints.
    hosts: list[str] = Field(default=["169.254.169.254", "metadata.google.internal"])


class URLValidationSettings(BaseModel):
    whitelist: WhitelistSettings = Field(default_factory=WhitelistSettings)
    blacklist: BlacklistSettings = Field(default_factory=BlacklistSettings)
    allowed_ports: list[int] = Field(default=[80, 443])
    dns_timeout_seconds: float = Field(default=5.0, gt=0)


class DomainTestSettings(BaseModel):
    executable: str = "ping"
    count: int = Field(default=1, ge=1, le=10)
    timeout_seconds: float = Field(default=10.0, gt=0)


class HTTPClientSettings(BaseModel):
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    read_timeout_seconds: float = Field(default=5.0, gt=0)
    # Website test bodies beyond this are truncated.
    max_response_bytes: int = Field(default=1024 * 1024, gt=0)


class Settings(BaseSettings):
    model_config = {"env_prefix": "EGRESSGUARD_", "env_nested_delimiter": "__", "extra": "ignore"}

    environment: str = Field(default_factory=_current_env)
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool | None = None

    url_validation: URLValidationSettings = Field(default_factory=URLValidationSettings)
    domain_test: DomainTestSettings = Field(default_factory=DomainTestSettings)
    http_client: HTTPClientSettings = Field(default_factory=HTTPClientSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _YamlProfileSource(settings_cls),
            file_secret_settings,
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def json_logs(self) -> bool:
        if self.log_json is None:
            return self.is_production
        return self.log_json

    @model_validator(mode="after")
    def _warn_on_open_policy(self) -> Self:
        policy = self.url_validation
        if not [d for d in policy.whitelist.domains if d and d.strip()]:
            logger.warning(
                "url_validation.whitelist.domains is empty; every outbound URL will be rejected"
            )
        if not policy.allowed_ports:
            logger.warning("url_validation.allowed_ports is empty; any explicit port is allowed")
        if self.is_production and self.debug:
            logger.warning("debug is enabled in production; error responses include tracebacks")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
