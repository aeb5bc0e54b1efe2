"""Tests for rate_sentinel.core.config."""

import pytest
from pydantic import ValidationError

from rate_sentinel.core.config import (
    ProviderConfig,
    RateSentinelConfig,
    SchedulerConfig,
    SyncConfig,
    _auto_cast,
    _merge_env_vars,
    load_config,
)
from rate_sentinel.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """No stray config file or env var leaks into these tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RATE_SENTINEL_CONFIG", raising=False)


class TestProviderConfig:
    def test_defaults(self):
        c = ProviderConfig()
        assert c.base_url == "http://api.coinlayer.com"
        assert c.live_path == "/live"
        assert c.target == "USD"
        assert c.request_timeout == 5
        assert c.max_requests_per_minute == 10

    def test_base_url_must_be_http(self):
        with pytest.raises(ValidationError, match="http"):
            ProviderConfig(base_url="ftp://example.com")

    def test_base_url_trailing_slash_stripped(self):
        assert ProviderConfig(base_url="https://x.test/").base_url == "https://x.test"

    def test_live_path_gets_leading_slash(self):
        assert ProviderConfig(live_path="live").live_path == "/live"

    def test_target_uppercased(self):
        assert ProviderConfig(target=" eur ").target == "EUR"

    def test_timeout_positive(self):
        with pytest.raises(ValidationError, match="request_timeout"):
            ProviderConfig(request_timeout=0)

    def test_rate_limit_min(self):
        with pytest.raises(ValidationError, match="max_requests_per_minute"):
            ProviderConfig(max_requests_per_minute=0)


class TestSchedulerConfig:
    def test_defaults(self):
        c = SchedulerConfig()
        assert c.enabled is True
        assert c.initial_delay_ms == 30_000
        assert c.interval_ms == 86_400_000
        assert c.interval_seconds == 86_400
        assert c.initial_delay_seconds == 30

    def test_interval_floor(self):
        with pytest.raises(ValidationError, match="interval_ms"):
            SchedulerConfig(interval_ms=999)

    def test_negative_initial_delay_rejected(self):
        with pytest.raises(ValidationError, match="initial_delay_ms"):
            SchedulerConfig(initial_delay_ms=-1)


class TestSyncConfig:
    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(retry_delay_seconds=-0.5)


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_config()
        assert isinstance(config, RateSentinelConfig)
        assert config.storage.sqlite_path == "./data/rate_sentinel.db"
        assert config.sync.retry_delay_seconds == 2.0

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "custom.yml"
        path.write_text(
            "provider:\n  access_key: abc\n  target: eur\n"
            "scheduler:\n  enabled: false\n  interval_ms: 60000\n"
        )
        config = load_config(str(path))
        assert config.provider.access_key == "abc"
        assert config.provider.target == "EUR"
        assert config.scheduler.enabled is False
        assert config.scheduler.interval_ms == 60_000

    def test_default_file_in_cwd(self, tmp_path):
        (tmp_path / "rate-sentinel.yml").write_text("sync:\n  retry_delay_seconds: 0.5\n")
        assert load_config().sync.retry_delay_seconds == 0.5

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "c.yml"
        path.write_text("scheduler:\n  enabled: true\n")
        monkeypatch.setenv("RATE_SENTINEL_SCHEDULER__ENABLED", "false")
        monkeypatch.setenv("RATE_SENTINEL_SCHEDULER__INTERVAL_MS", "5000")
        config = load_config(str(path))
        assert config.scheduler.enabled is False
        assert config.scheduler.interval_ms == 5000

    def test_numeric_access_key_from_env_stays_string(self, monkeypatch):
        monkeypatch.setenv("RATE_SENTINEL_PROVIDER__ACCESS_KEY", "12345")
        assert load_config().provider.access_key == "12345"

    def test_config_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yml"
        path.write_text("api:\n  port: 9000\n")
        monkeypatch.setenv("RATE_SENTINEL_CONFIG", str(path))
        assert load_config().api.port == 9000

    def test_missing_file_raises(self):
        with pytest.raises(ConfigError, match="not found"):
            load_config("/nonexistent/rate-sentinel.yml")

    def test_invalid_value_wrapped(self, monkeypatch):
        monkeypatch.setenv("RATE_SENTINEL_SCHEDULER__INTERVAL_MS", "10")
        with pytest.raises(ConfigError):
            load_config()

    def test_non_mapping_yaml_raises(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(str(path))


class TestEnvHelpers:
    @pytest.mark.parametrize(
        "raw, expected",
        [("true", True), ("False", False), ("42", 42), ("2.5", 2.5), ("USD", "USD")],
    )
    def test_auto_cast(self, raw, expected):
        assert _auto_cast(raw) == expected

    def test_merge_nested(self, monkeypatch):
        monkeypatch.setenv("RATE_SENTINEL_PROVIDER__TARGET", "EUR")
        merged = _merge_env_vars({"provider": {"access_key": "k"}}, "RATE_SENTINEL_")
        assert merged["provider"] == {"access_key": "k", "target": "EUR"}

    def test_merge_does_not_mutate_base(self, monkeypatch):
        base = {"provider": {"access_key": "k"}}
        monkeypatch.setenv("RATE_SENTINEL_PROVIDER__TARGET", "EUR")
        _merge_env_vars(base, "RATE_SENTINEL_")
        assert base == {"provider": {"access_key": "k"}}
