"""Read-side views over the rate history store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone

from rate_sentinel.analytics import metrics
from rate_sentinel.analytics.catalog import SEARCH_LIMIT, search_symbols, with_bootstrap
from rate_sentinel.core.exceptions import QueryValidationError
from rate_sentinel.core.models import (
    HistoryPoint,
    LatestRate,
    MarketReport,
    RateSample,
    StatsSummary,
    SummaryWindow,
    Trend,
    Volatility,
)
from rate_sentinel.ingestion.store import RateHistoryStore

logger = logging.getLogger(__name__)

_DAY_SECONDS = 86_400
_REPORT_WINDOW_HOURS = 24

_VOLATILITY_PHRASES = {
    Volatility.STABLE: "stable",
    Volatility.MILD: "showing mild movement",
    Volatility.VOLATILE: "volatile",
}
_TREND_PHRASES = {
    Trend.UP: "trending up",
    Trend.DOWN: "trending down",
    Trend.FLAT: "holding flat",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_day(value: str | date, field: str) -> date:
    """Parse a ``YYYY-MM-DD`` query parameter."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise QueryValidationError(
            f"Invalid {field} date {value!r}, expected YYYY-MM-DD",
            context={"field": field, "value": value},
        ) from e


def local_day_bounds(start: date, end: date) -> tuple[int, int]:
    """Epoch-second bounds covering whole local calendar days [start, end]."""
    start_epoch = int(datetime.combine(start, time.min).timestamp())
    next_day = datetime.combine(end + timedelta(days=1), time.min)
    return start_epoch, int(next_day.timestamp()) - 1


def _normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


def _local_datetime(epoch: int) -> datetime:
    return datetime.fromtimestamp(epoch)


class AggregationEngine:
    """Latest / history / summary / commentary views, all pure store reads.

    Symbols are upper-cased on the way in. Windows ending "now" use the
    injected clock so results are reproducible in tests.
    """

    def __init__(
        self,
        store: RateHistoryStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    # --- Symbols ---

    async def supported_symbols(self) -> list[str]:
        """All stored symbols, or the bootstrap catalog before the first sync."""
        stored = await self._store.all_symbols()
        if not stored:
            logger.info("No stored symbols yet, serving bootstrap catalog")
        return with_bootstrap(stored)

    async def search_symbols(
        self, keyword: str | None = None, limit: int = SEARCH_LIMIT
    ) -> list[str]:
        symbols = with_bootstrap(await self._store.all_symbols())
        return search_symbols(symbols, keyword, limit)

    # --- Latest ---

    async def latest(self, symbol: str | None = None) -> list[LatestRate]:
        """Most recent sample per symbol; one symbol if ``symbol`` is given."""
        if symbol is not None and symbol.strip():
            sample = await self._store.latest_by_symbol(_normalize_symbol(symbol))
            samples = [sample] if sample is not None else []
        else:
            samples = await self._store.all_latest()
        return [self._to_latest(s) for s in samples]

    # --- History ---

    async def history(
        self,
        symbol: str,
        start: str | date,
        end: str | date,
    ) -> list[HistoryPoint]:
        """Ordered (date, rate) pairs for whole local days ``start``..``end``."""
        start_day = parse_day(start, "start")
        end_day = parse_day(end, "end")
        if start_day > end_day:
            raise QueryValidationError(
                f"start ({start_day}) must not be after end ({end_day})",
                context={"field": "start", "value": start_day.isoformat()},
            )

        start_epoch, end_epoch = local_day_bounds(start_day, end_day)
        samples = await self._store.in_range(
            _normalize_symbol(symbol), start_epoch, end_epoch
        )
        return [
            HistoryPoint(
                date=_local_datetime(s.observed_at).date().isoformat(),
                rate=s.rate,
            )
            for s in samples
        ]

    # --- Summary ---

    async def summary(
        self,
        symbol: str,
        window: SummaryWindow | str = SummaryWindow.SEVEN_DAYS,
    ) -> StatsSummary:
        """Max/min/avg and first-to-last change over the trailing window."""
        window = self._parse_window(window)
        symbol = _normalize_symbol(symbol)
        end_epoch = int(self._clock().timestamp())
        start_epoch = end_epoch - window.days * _DAY_SECONDS

        max_value = await self._store.max_in(symbol, start_epoch, end_epoch)
        min_value = await self._store.min_in(symbol, start_epoch, end_epoch)
        avg_value = await self._store.avg_in(symbol, start_epoch, end_epoch)
        samples = await self._store.in_range(symbol, start_epoch, end_epoch)

        change = metrics.ZERO
        percent_text = metrics.format_percent(metrics.ZERO)
        if samples:
            first, last = samples[0].rate, samples[-1].rate
            change = metrics.price_change(first, last)
            percent_text = metrics.format_percent(metrics.change_percent(first, last))

        return StatsSummary(
            symbol=symbol,
            window=window,
            max_value=max_value if max_value is not None else metrics.ZERO,
            min_value=min_value if min_value is not None else metrics.ZERO,
            avg_value=(
                metrics.round_money(avg_value) if avg_value is not None else metrics.ZERO
            ),
            price_change=metrics.round_money(change),
            price_change_percent=percent_text,
            sample_count=len(samples),
        )

    # --- Commentary ---

    async def explain_market(self, symbol: str) -> MarketReport:
        """Templated commentary on the last 24 hours of ``symbol``."""
        symbol = _normalize_symbol(symbol)
        end_epoch = int(self._clock().timestamp())
        start_epoch = end_epoch - _REPORT_WINDOW_HOURS * 3600

        samples = await self._store.in_range(symbol, start_epoch, end_epoch)
        if not samples:
            return MarketReport(
                symbol=symbol,
                report=f"No data for {symbol} in the last {_REPORT_WINDOW_HOURS} hours.",
                window_hours=_REPORT_WINDOW_HOURS,
            )

        high = await self._store.max_in(symbol, start_epoch, end_epoch)
        low = await self._store.min_in(symbol, start_epoch, end_epoch)
        if high is None or low is None:
            # Appended between the two reads; fall back to the sample list.
            high = max(s.rate for s in samples)
            low = min(s.rate for s in samples)

        first, last = samples[0].rate, samples[-1].rate
        change = metrics.price_change(first, last)
        percent = metrics.change_percent(first, last)
        trend = metrics.classify_trend(percent)
        volatility = metrics.classify_volatility(percent)

        return MarketReport(
            symbol=symbol,
            report=self._render_report(symbol, high, low, percent, trend, volatility),
            window_hours=_REPORT_WINDOW_HOURS,
            sample_count=len(samples),
            trend=trend,
            volatility=volatility,
            max_value=high,
            min_value=low,
            price_change=metrics.round_money(change),
            change_percent=percent,
        )

    # --- Helpers ---

    @staticmethod
    def _parse_window(window: SummaryWindow | str) -> SummaryWindow:
        try:
            return SummaryWindow(window)
        except ValueError as e:
            allowed = ", ".join(w.value for w in SummaryWindow)
            raise QueryValidationError(
                f"Unsupported range {window!r}, expected one of: {allowed}",
                context={"field": "range", "value": window},
            ) from e

    @staticmethod
    def _to_latest(sample: RateSample) -> LatestRate:
        return LatestRate(
            symbol=sample.symbol,
            rate=sample.rate,
            timestamp=sample.observed_at,
            last_update=_local_datetime(sample.observed_at).strftime("%Y-%m-%d %H:%M:%S"),
        )

    @staticmethod
    def _render_report(symbol, high, low, percent, trend, volatility) -> str:
        return (
            f"{symbol} was {_VOLATILITY_PHRASES[volatility]} over the past "
            f"{_REPORT_WINDOW_HOURS} hours. High ${high:,.2f}, low ${low:,.2f}. "
            f"Overall {_TREND_PHRASES[trend]}, "
            f"change {metrics.format_percent(percent, signed=True)}."
        )
