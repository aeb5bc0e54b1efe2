"""Shared pytest fixtures for rate-sentinel."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from rate_sentinel.core.config import ProviderConfig, StorageConfig
from rate_sentinel.core.models import RateSample
from rate_sentinel.ingestion.store import SqliteRateStore

# 2024-03-10 12:00:00 UTC
NOON_EPOCH = 1_710_072_000


@pytest.fixture
def fixed_now() -> datetime:
    return datetime.fromtimestamp(NOON_EPOCH, tz=timezone.utc)


@pytest.fixture
def make_sample():
    """Factory for RateSample with overridable defaults."""

    def _make(symbol="BTC", rate="100", observed_at=NOON_EPOCH, **overrides):
        defaults = dict(
            symbol=symbol,
            rate=Decimal(str(rate)),
            observed_at=observed_at,
            recorded_at=datetime(2024, 3, 10, 12, 0, 5, tzinfo=timezone.utc),
        )
        defaults.update(overrides)
        return RateSample(**defaults)

    return _make


@pytest.fixture
async def store():
    """An initialized in-memory SqliteRateStore."""
    s = SqliteRateStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        base_url="http://rates.test",
        live_path="/live",
        access_key="test-key",
        target="USD",
        request_timeout=2,
        max_requests_per_minute=600,
    )


@pytest.fixture
def live_url(provider_config: ProviderConfig) -> str:
    return f"{provider_config.base_url}{provider_config.live_path}"
