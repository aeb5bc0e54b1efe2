"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

Symbol = str
EpochSeconds = int

# --- Enumerations ---


class SummaryWindow(StrEnum):
    """Lookback windows supported by the statistics summary."""

    SEVEN_DAYS = "7d"
    THIRTY_DAYS = "30d"

    @property
    def days(self) -> int:
        return int(self.value[:-1])


class Trend(StrEnum):
    """Direction of the price move over a window."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class Volatility(StrEnum):
    """Qualitative size of the price move over a window."""

    STABLE = "stable"
    MILD = "mild"
    VOLATILE = "volatile"


class SchedulerState(StrEnum):
    """Scheduler lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"


class SyncErrorKind(StrEnum):
    """Failure classification for a sync cycle."""

    RATE_LIMITED = "rate_limited"
    PROVIDER = "provider"
    EMPTY_RESULT = "empty_result"
    STORAGE = "storage"
    UNEXPECTED = "unexpected"


# --- Time Series Models ---


class RateSample(BaseModel):
    """One observation of one symbol's price at one instant."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    rate: Decimal
    observed_at: EpochSeconds
    recorded_at: datetime

    @field_validator("symbol")
    @classmethod
    def symbol_uppercase(cls, v: str) -> str:
        normalized = v.strip().upper()
        if not normalized:
            raise ValueError("symbol must not be empty")
        return normalized

    @field_validator("rate")
    @classmethod
    def rate_positive(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v <= 0:
            raise ValueError(f"rate must be a finite number > 0, got {v}")
        return v

    @field_validator("observed_at")
    @classmethod
    def observed_at_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("observed_at cannot be negative")
        return v


class RateSnapshot(BaseModel):
    """The symbol→rate mapping returned by one fetch call."""

    model_config = ConfigDict(frozen=True)

    rates: dict[Symbol, Decimal]
    target: str | None = None
    timestamp: EpochSeconds | None = None

    def __len__(self) -> int:
        return len(self.rates)


# --- Provider Envelope ---


class ProviderErrorInfo(BaseModel):
    """Error descriptor embedded in a failed provider response."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    code: int | None = None
    info: str | None = None
    type: str | None = None


class ProviderEnvelope(BaseModel):
    """Raw provider response: ``{success, timestamp, target, rates, error}``.

    Unknown fields are ignored so that schema additions on the provider side
    never break ingestion. Rate values are kept untyped here; the client
    decides which entries are usable.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    success: bool | None = None
    timestamp: int | None = None
    target: str | None = None
    rates: dict[str, Any] | None = None
    error: ProviderErrorInfo | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def timestamp_whole_seconds(cls, v: Any) -> int | None:
        """Truncate fractional timestamps; anything unusable becomes None."""
        if isinstance(v, bool):
            return None
        if isinstance(v, int):
            return v
        if isinstance(v, (Decimal, float, str)):
            try:
                value = Decimal(str(v).strip())
            except ArithmeticError:
                return None
            return int(value) if value.is_finite() else None
        return None


# --- Sync Models ---


class SyncOutcome(BaseModel):
    """Result of one sync cycle: rows written, or a classified failure."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    trigger: str
    started_at: datetime
    finished_at: datetime
    rows_written: int = 0
    error_kind: SyncErrorKind | None = None
    message: str | None = None
    error: Exception | None = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


# --- Read-side Views ---


class LatestRate(BaseModel):
    """Most recent stored rate for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    rate: Decimal
    timestamp: EpochSeconds
    last_update: str


class HistoryPoint(BaseModel):
    """One (date, rate) pair for chart rendering."""

    model_config = ConfigDict(frozen=True)

    date: str
    rate: Decimal


class StatsSummary(BaseModel):
    """Windowed statistics for one symbol. Recomputed on every read."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    window: SummaryWindow
    max_value: Decimal
    min_value: Decimal
    avg_value: Decimal
    price_change: Decimal
    price_change_percent: str
    sample_count: int = 0


class MarketReport(BaseModel):
    """Templated natural-language commentary for the last 24 hours."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    report: str
    window_hours: int = 24
    sample_count: int = 0
    trend: Trend | None = None
    volatility: Volatility | None = None
    max_value: Decimal | None = None
    min_value: Decimal | None = None
    price_change: Decimal | None = None
    change_percent: Decimal | None = None
