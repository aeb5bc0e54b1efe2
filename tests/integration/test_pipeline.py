"""End-to-end: provider response -> sync -> store -> aggregation."""

from __future__ import annotations

import time
from decimal import Decimal

import httpx
import pytest
import respx

from rate_sentinel.analytics.engine import AggregationEngine
from rate_sentinel.core.config import SchedulerConfig
from rate_sentinel.core.exceptions import EmptyResultError, ProviderError, RateLimitExceeded
from rate_sentinel.core.models import SyncErrorKind, Trend
from rate_sentinel.ingestion.scheduler import RateScheduler


def _live(rates, timestamp):
    return httpx.Response(
        200,
        json={"success": True, "timestamp": timestamp, "target": "USD", "rates": rates},
    )


async def _total(store) -> int:
    return (await store.get_statistics())["total_samples"]


class TestSyncThenAggregate:
    @respx.mock
    async def test_price_rise_is_reported(self, live_url, sync_service, integration_store):
        now = int(time.time())
        respx.get(live_url).mock(
            side_effect=[
                _live({"BTC": 100, "ETH": 10}, now - 7200),
                _live({"BTC": 110, "ETH": 10}, now - 3600),
            ]
        )

        assert await sync_service.sync_to_store() == 2
        assert await sync_service.sync_to_store() == 2

        engine = AggregationEngine(integration_store)
        summary = await engine.summary("BTC", "7d")
        assert summary.price_change == Decimal("10.00")
        assert summary.price_change_percent == "10.0%"
        assert summary.max_value == Decimal("110")
        assert summary.min_value == Decimal("100")
        assert summary.avg_value == Decimal("105.00")

        report = await engine.explain_market("BTC")
        assert report.trend == Trend.UP
        assert "+10.0%" in report.report

        flat = await engine.summary("ETH", "7d")
        assert flat.price_change_percent == "0.0%"

    @respx.mock
    async def test_one_batch_shares_timestamps(self, live_url, sync_service, integration_store):
        respx.get(live_url).mock(
            return_value=_live({"BTC": 1, "ETH": 2, "SOL": 3, "DOGE": 0.1}, 1_710_072_000)
        )

        assert await sync_service.sync_to_store() == 4

        latest = await integration_store.all_latest()
        assert len(latest) == 4
        assert len({s.observed_at for s in latest}) == 1
        assert len({s.recorded_at for s in latest}) == 1

    @respx.mock
    async def test_latest_symbols_after_sync(self, live_url, sync_service, integration_store):
        respx.get(live_url).mock(return_value=_live({"ETH": 2, "BTC": 1}, 1_710_072_000))
        await sync_service.sync_to_store()

        engine = AggregationEngine(integration_store)
        assert await engine.supported_symbols() == ["BTC", "ETH"]
        assert [r.symbol for r in await engine.latest()] == ["BTC", "ETH"]


class TestFailurePaths:
    @respx.mock
    async def test_rate_limit_no_retry_no_rows(
        self, live_url, sync_service, integration_store, retry_sleeps
    ):
        route = respx.get(live_url).mock(return_value=httpx.Response(429))

        with pytest.raises(RateLimitExceeded):
            await sync_service.sync_to_store()

        assert route.call_count == 1
        assert retry_sleeps == []
        assert await _total(integration_store) == 0

    @respx.mock
    async def test_empty_rates_retried_once(
        self, live_url, sync_service, integration_store, retry_sleeps
    ):
        route = respx.get(live_url).mock(
            return_value=httpx.Response(200, json={"success": True, "rates": {}})
        )

        with pytest.raises(EmptyResultError):
            await sync_service.sync_to_store()

        assert route.call_count == 2
        assert retry_sleeps == [2.0]
        assert await _total(integration_store) == 0

    @respx.mock
    async def test_transient_error_then_success(
        self, live_url, sync_service, integration_store
    ):
        route = respx.get(live_url).mock(
            side_effect=[httpx.Response(503), _live({"BTC": 1}, 1_710_072_000)]
        )

        assert await sync_service.sync_to_store() == 1
        assert route.call_count == 2

    @respx.mock
    async def test_provider_envelope_error_surfaces_second_attempt(
        self, live_url, sync_service
    ):
        respx.get(live_url).mock(
            side_effect=[
                httpx.Response(500),
                httpx.Response(
                    200,
                    json={"success": False, "error": {"code": 104, "info": "usage limit"}},
                ),
            ]
        )

        with pytest.raises(ProviderError, match=r"\[104\] usage limit"):
            await sync_service.sync_to_store()


class TestScheduledSync:
    @respx.mock
    async def test_tick_syncs_and_records_outcome(
        self, live_url, sync_service, integration_store
    ):
        respx.get(live_url).mock(return_value=_live({"BTC": 1}, 1_710_072_000))
        scheduler = RateScheduler(sync_service, SchedulerConfig(initial_delay_ms=0))

        outcome = await scheduler.tick()

        assert outcome.ok
        assert outcome.rows_written == 1
        assert await _total(integration_store) == 1

    @respx.mock
    async def test_rate_limited_tick_does_not_raise(self, live_url, sync_service):
        respx.get(live_url).mock(return_value=httpx.Response(429))
        scheduler = RateScheduler(sync_service, SchedulerConfig(initial_delay_ms=0))

        outcome = await scheduler.tick()

        assert outcome.error_kind == SyncErrorKind.RATE_LIMITED
        assert scheduler.status()["last_outcome"]["rows_written"] == 0
