"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from rate_sentinel.core.exceptions import ConfigError


class ProviderConfig(BaseModel):
    """Pricing provider (coinlayer-style ``/live`` endpoint) access."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    base_url: str = "http://api.coinlayer.com"
    live_path: str = "/live"
    access_key: str = ""
    target: str = "USD"
    request_timeout: float = 5
    max_requests_per_minute: int = 10

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("live_path")
    @classmethod
    def live_path_absolute(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @field_validator("target")
    @classmethod
    def target_uppercase(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v

    @field_validator("max_requests_per_minute")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_requests_per_minute must be >= 1")
        return v


class SyncConfig(BaseModel):
    """Sync cycle retry settings."""

    model_config = ConfigDict(frozen=True)

    retry_delay_seconds: float = 2.0

    @field_validator("retry_delay_seconds")
    @classmethod
    def delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry_delay_seconds must be >= 0")
        return v


class SchedulerConfig(BaseModel):
    """Periodic sync timer. Re-read on every tick."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    initial_delay_ms: int = 30_000
    interval_ms: int = 86_400_000

    @field_validator("initial_delay_ms")
    @classmethod
    def initial_delay_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("initial_delay_ms must be >= 0")
        return v

    @field_validator("interval_ms")
    @classmethod
    def interval_at_least_one_second(cls, v: int) -> int:
        if v < 1000:
            raise ValueError("interval_ms must be >= 1000")
        return v

    @property
    def initial_delay_seconds(self) -> float:
        return self.initial_delay_ms / 1000

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/rate_sentinel.db"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class RateSentinelConfig(BaseModel):
    """Root configuration for the entire rate-sentinel system."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderConfig = ProviderConfig()
    sync: SyncConfig = SyncConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "RATE_SENTINEL_",
) -> RateSentinelConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (RATE_SENTINEL_PROVIDER__ACCESS_KEY, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        RATE_SENTINEL_SCHEDULER__ENABLED=false  ->  scheduler.enabled = False
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return RateSentinelConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("RATE_SENTINEL_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from RATE_SENTINEL_CONFIG not found: {env_path}",
                context={"field": "RATE_SENTINEL_CONFIG", "value": env_path},
            )
        return p

    default = Path("rate-sentinel.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            else:
                target[part] = dict(target[part])
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
