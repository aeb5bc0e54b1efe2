"""Rate acquisition: provider client, sync orchestration, scheduler, storage."""

from rate_sentinel.ingestion.client import CoinlayerClient
from rate_sentinel.ingestion.scheduler import RateScheduler
from rate_sentinel.ingestion.store import RateHistoryStore, SqliteRateStore, create_store
from rate_sentinel.ingestion.sync import RateFetcher, RateSyncService

__all__ = [
    "CoinlayerClient",
    "RateFetcher",
    "RateHistoryStore",
    "RateScheduler",
    "RateSyncService",
    "SqliteRateStore",
    "create_store",
]
