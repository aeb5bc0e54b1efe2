"""Sync orchestration: fetch with retry, stamp samples, append in one batch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from rate_sentinel.core.config import SyncConfig
from rate_sentinel.core.exceptions import (
    EmptyResultError,
    FetchError,
    RateLimitExceeded,
    StorageError,
)
from rate_sentinel.core.models import (
    RateSample,
    RateSnapshot,
    SyncErrorKind,
    SyncOutcome,
)
from rate_sentinel.ingestion.store import RateHistoryStore

logger = logging.getLogger(__name__)


@runtime_checkable
class RateFetcher(Protocol):
    """Anything that can produce one RateSnapshot per call."""

    async def fetch_latest_rates(self) -> RateSnapshot: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateSyncService:
    """Wraps the fetcher with a bounded retry and persists the result.

    Retry policy:
        - ``RateLimitExceeded``: propagate immediately, zero retries.
        - any other ``FetchError``: wait ``retry_delay_seconds`` and call the
          fetcher exactly once more; the second error propagates unmodified.
        - ``StorageError`` from the append: never retried.

    Overlapping ``sync_to_store`` calls (timer tick vs. manual trigger) are
    serialized by a single-flight lock: a second caller waits for the
    in-flight cycle and then runs its own.
    """

    def __init__(
        self,
        fetcher: RateFetcher,
        store: RateHistoryStore,
        config: SyncConfig | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._config = config or SyncConfig()
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_outcome: SyncOutcome | None = None

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    @property
    def last_outcome(self) -> SyncOutcome | None:
        return self._last_outcome

    async def fetch_with_retry(self) -> RateSnapshot:
        """Fetch rates, retrying once on retriable failures."""
        try:
            return await self._fetcher.fetch_latest_rates()
        except FetchError as e:
            if not e.retriable:
                raise
            delay = self._config.retry_delay_seconds
            logger.warning(
                "Rate fetch failed (%s: %s), retrying once in %.1fs",
                type(e).__name__, e, delay,
            )
            await self._sleep(delay)

        return await self._fetcher.fetch_latest_rates()

    async def sync_to_store(self) -> int:
        """Run one fetch -> append cycle. Returns rows written.

        Raises:
            RateLimitExceeded: Provider quota exhausted (no retry attempted).
            ProviderError: Fetch failed twice; the second error is raised.
            StorageError: The batch append failed.
        """
        async with self._lock:
            snapshot = await self.fetch_with_retry()
            samples = self._to_samples(snapshot)
            if not samples:
                logger.warning("Fetch returned no rates, nothing to store")
                return 0

            try:
                written = await self._store.append(samples)
            except StorageError:
                logger.error(
                    "Failed to append %d rate samples; check the database "
                    "path and schema",
                    len(samples),
                )
                raise

            logger.info(
                "Synced %d rate samples (observed_at=%d)",
                written, samples[0].observed_at,
            )
            return written

    async def run_cycle(self, trigger: str = "manual") -> SyncOutcome:
        """Run ``sync_to_store`` and classify the result instead of raising."""
        started = self._clock()
        rows = 0
        kind: SyncErrorKind | None = None
        error: Exception | None = None

        try:
            rows = await self.sync_to_store()
        except RateLimitExceeded as e:
            kind, error = SyncErrorKind.RATE_LIMITED, e
        except EmptyResultError as e:
            kind, error = SyncErrorKind.EMPTY_RESULT, e
        except FetchError as e:
            kind, error = SyncErrorKind.PROVIDER, e
        except StorageError as e:
            kind, error = SyncErrorKind.STORAGE, e
        except Exception as e:
            kind, error = SyncErrorKind.UNEXPECTED, e

        outcome = SyncOutcome(
            trigger=trigger,
            started_at=started,
            finished_at=self._clock(),
            rows_written=rows,
            error_kind=kind,
            message=str(error) if error is not None else None,
            error=error,
        )
        self._last_outcome = outcome
        return outcome

    def _to_samples(self, snapshot: RateSnapshot) -> list[RateSample]:
        """Stamp every rate with one shared observed_at / recorded_at pair."""
        recorded_at = self._clock()
        if snapshot.timestamp is not None and snapshot.timestamp > 0:
            observed_at = snapshot.timestamp
        else:
            observed_at = int(recorded_at.timestamp())

        return [
            RateSample(
                symbol=symbol,
                rate=rate,
                observed_at=observed_at,
                recorded_at=recorded_at,
            )
            for symbol, rate in snapshot.rates.items()
        ]
