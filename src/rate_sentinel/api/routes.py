"""FastAPI route definitions for the Rate Sentinel API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

import rate_sentinel
from rate_sentinel.analytics.engine import AggregationEngine
from rate_sentinel.api.deps import (
    AppState,
    get_app_state,
    get_client,
    get_config,
    get_engine,
    get_scheduler,
    get_store,
)
from rate_sentinel.api.schemas import (
    HealthResponse,
    LiveRateResponse,
    LiveRatesResponse,
    SchedulerStatusResponse,
    SchedulerUpdateRequest,
    SyncResponse,
)
from rate_sentinel.core.config import SchedulerConfig
from rate_sentinel.core.exceptions import ConfigError
from rate_sentinel.core.models import HistoryPoint, LatestRate, MarketReport, StatsSummary
from rate_sentinel.ingestion.client import CoinlayerClient
from rate_sentinel.ingestion.scheduler import RateScheduler
from rate_sentinel.ingestion.store import RateHistoryStore

logger = logging.getLogger(__name__)

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: RateHistoryStore = Depends(get_store),
    scheduler: RateScheduler = Depends(get_scheduler),
):
    """System health and basic statistics."""
    healthy = await store.health_check()
    if not healthy:
        return HealthResponse(
            status="degraded",
            version=rate_sentinel.__version__,
            database="unavailable",
            total_samples=0,
            unique_symbols=0,
            scheduler_state=scheduler.state,
        )

    stats = await store.get_statistics()
    return HealthResponse(
        status="ok",
        version=rate_sentinel.__version__,
        database="ok",
        total_samples=stats["total_samples"],
        unique_symbols=stats["unique_symbols"],
        latest_observed_at=stats["latest_observed_at"],
        scheduler_state=scheduler.state,
    )


# -- Rates --


@router.get("/rates/symbols", response_model=list[str])
async def list_symbols(engine: AggregationEngine = Depends(get_engine)):
    """All tracked symbols (bootstrap catalog before the first sync)."""
    return await engine.supported_symbols()


@router.get("/rates/search", response_model=list[str])
async def search_symbols(
    keyword: str | None = Query(None, description="Case-insensitive substring"),
    engine: AggregationEngine = Depends(get_engine),
):
    """Search symbols by substring, at most 50 results."""
    return await engine.search_symbols(keyword)


@router.get("/rates/latest", response_model=list[LatestRate])
async def latest_rates(
    symbol: str | None = Query(None, description="Omit for all symbols"),
    engine: AggregationEngine = Depends(get_engine),
):
    """Most recent stored rate per symbol."""
    return await engine.latest(symbol)


@router.get("/rates/history", response_model=list[HistoryPoint])
async def rate_history(
    symbol: str = Query(..., min_length=1),
    start: str = Query(..., description="YYYY-MM-DD, inclusive"),
    end: str = Query(..., description="YYYY-MM-DD, inclusive"),
    engine: AggregationEngine = Depends(get_engine),
):
    """Stored rates for whole calendar days, oldest first."""
    return await engine.history(symbol, start, end)


# -- Statistics --


@router.get("/stats/summary/{symbol}", response_model=StatsSummary)
async def stats_summary(
    symbol: str,
    range_: str = Query("7d", alias="range", description="7d or 30d"),
    engine: AggregationEngine = Depends(get_engine),
):
    """Max/min/avg and change over the trailing window."""
    return await engine.summary(symbol, range_)


@router.get("/analysis/explain/{symbol}", response_model=MarketReport)
async def explain_market(
    symbol: str,
    engine: AggregationEngine = Depends(get_engine),
):
    """Plain-English commentary on the last 24 hours."""
    return await engine.explain_market(symbol)


# -- Live Market --


@router.get("/market/rates", response_model=LiveRatesResponse)
async def live_rates(client: CoinlayerClient = Depends(get_client)):
    """Current rates straight from the provider. Nothing is stored."""
    snapshot = await client.fetch_latest_rates()
    return LiveRatesResponse(
        target=snapshot.target,
        timestamp=snapshot.timestamp,
        rates=snapshot.rates,
    )


@router.get("/market/rates/{symbol}", response_model=LiveRateResponse)
async def live_rate(
    symbol: str,
    client: CoinlayerClient = Depends(get_client),
    config=Depends(get_config),
):
    """One symbol's current rate straight from the provider."""
    rate = await client.get_rate(symbol)
    if rate is None:
        raise HTTPException(
            status_code=404,
            detail=f"No live rate for symbol '{symbol.upper()}'",
        )
    return LiveRateResponse(
        symbol=symbol.strip().upper(), rate=rate, target=config.provider.target
    )


# -- Admin --


@router.post("/admin/sync", response_model=SyncResponse)
async def trigger_sync(state: AppState = Depends(get_app_state)):
    """Run one sync cycle now. Failures surface with their mapped status."""
    outcome = await state.sync.run_cycle(trigger="manual")
    if not outcome.ok:
        logger.warning("Manual sync failed (%s): %s", outcome.error_kind, outcome.message)
        raise outcome.error
    return SyncResponse(
        trigger=outcome.trigger,
        rows_written=outcome.rows_written,
        started_at=outcome.started_at,
        finished_at=outcome.finished_at,
        duration_seconds=outcome.duration_seconds,
    )


@router.get("/admin/scheduler", response_model=SchedulerStatusResponse)
async def scheduler_status(scheduler: RateScheduler = Depends(get_scheduler)):
    """Scheduler state, settings and the last sync outcome."""
    return scheduler.status()


@router.put("/admin/scheduler", response_model=SchedulerStatusResponse)
async def update_scheduler(
    request: SchedulerUpdateRequest,
    state: AppState = Depends(get_app_state),
):
    """Flip the kill switch or change the interval; applies from the next tick."""
    updates = request.model_dump(exclude_none=True)
    try:
        scheduler_config = SchedulerConfig.model_validate(
            {**state.config.scheduler.model_dump(), **updates}
        )
    except ValidationError as e:
        raise ConfigError(
            f"Invalid scheduler settings: {e}",
            context={"field": "scheduler", "value": updates},
        ) from e

    state.config = state.config.model_copy(update={"scheduler": scheduler_config})
    logger.info(
        "Scheduler settings updated: enabled=%s interval_ms=%d",
        scheduler_config.enabled, scheduler_config.interval_ms,
    )
    return state.scheduler.status()
