"""API-specific request/response schemas (Pydantic v2).

Read-side views (``LatestRate``, ``HistoryPoint``, ``StatsSummary``,
``MarketReport``) are served as-is from ``rate_sentinel.core.models``.
Decimal fields serialize as JSON strings to keep full precision.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from rate_sentinel.core.models import SchedulerState, SyncErrorKind


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    version: str
    database: str
    total_samples: int
    unique_symbols: int
    latest_observed_at: int | None = None
    scheduler_state: SchedulerState


# -- Live Market --


class LiveRatesResponse(BaseModel):
    """Response for GET /api/market/rates (not persisted)."""

    target: str | None = None
    timestamp: int | None = None
    rates: dict[str, Decimal]


class LiveRateResponse(BaseModel):
    """Response for GET /api/market/rates/{symbol}."""

    symbol: str
    rate: Decimal
    target: str | None = None


# -- Admin --


class SyncResponse(BaseModel):
    """Response for POST /api/admin/sync."""

    trigger: str
    rows_written: int
    started_at: datetime
    finished_at: datetime
    duration_seconds: float


class SyncOutcomeResponse(BaseModel):
    """Last recorded sync cycle, success or failure."""

    trigger: str
    started_at: datetime
    finished_at: datetime
    rows_written: int
    error_kind: SyncErrorKind | None = None
    message: str | None = None


class SchedulerStatusResponse(BaseModel):
    """Response for GET/PUT /api/admin/scheduler."""

    state: SchedulerState
    running: bool
    enabled: bool
    interval_ms: int
    initial_delay_ms: int
    ticks: int
    last_tick_at: datetime | None = None
    last_outcome: SyncOutcomeResponse | None = None


class SchedulerUpdateRequest(BaseModel):
    """Request body for PUT /api/admin/scheduler. Omitted fields are kept."""

    enabled: bool | None = None
    interval_ms: int | None = Field(default=None, ge=1000)
