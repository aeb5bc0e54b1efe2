"""Integration test fixtures: real SQLite file and real HTTP client, mocked network."""

from __future__ import annotations

from pathlib import Path

import pytest

from rate_sentinel.core.config import ProviderConfig, StorageConfig, SyncConfig
from rate_sentinel.ingestion.client import CoinlayerClient
from rate_sentinel.ingestion.store import SqliteRateStore, create_store
from rate_sentinel.ingestion.sync import RateSyncService


@pytest.fixture
async def integration_store(tmp_path: Path) -> SqliteRateStore:
    """An initialized file-backed store."""
    store = await create_store(StorageConfig(sqlite_path=str(tmp_path / "integration.db")))
    yield store
    await store.close()


@pytest.fixture
async def coinlayer(provider_config: ProviderConfig) -> CoinlayerClient:
    async with CoinlayerClient(provider_config) as client:
        yield client


@pytest.fixture
def retry_sleeps() -> list[float]:
    return []


@pytest.fixture
def sync_service(coinlayer, integration_store, retry_sleeps) -> RateSyncService:
    async def _sleep(delay: float) -> None:
        retry_sleeps.append(delay)

    return RateSyncService(
        coinlayer,
        integration_store,
        SyncConfig(retry_delay_seconds=2.0),
        sleep=_sleep,
    )
