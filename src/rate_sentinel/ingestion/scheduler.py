"""Process-wide periodic timer that drives rate syncs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from rate_sentinel.core.config import SchedulerConfig
from rate_sentinel.core.models import SchedulerState, SyncErrorKind, SyncOutcome
from rate_sentinel.ingestion.sync import RateSyncService

logger = logging.getLogger(__name__)

_RATE_LIMIT_HINT = (
    "Pricing provider quota exhausted (HTTP 429). Skipping until the next "
    "interval. Set scheduler.enabled=false or raise scheduler.interval_ms "
    "(86400000 = 24h) until the quota resets."
)


class RateScheduler:
    """Fixed-rate sync timer with a kill switch.

    Lifecycle: ``start()`` spawns one asyncio task that sleeps
    ``initial_delay_ms`` and then calls :meth:`tick` every ``interval_ms``.
    The configuration callable is re-evaluated on every tick, so flipping
    ``enabled`` or changing ``interval_ms`` takes effect without a restart.

    Ticks are anchored to the schedule, not to cycle completion. A cycle
    that overruns its slot makes the next tick fire immediately, after
    which the schedule re-anchors; the timer never runs two cycles at once.

    Sync failures are logged by kind and never propagated.
    """

    def __init__(
        self,
        sync_service: RateSyncService,
        config_source: Callable[[], SchedulerConfig] | SchedulerConfig,
    ) -> None:
        self._sync = sync_service
        if isinstance(config_source, SchedulerConfig):
            fixed = config_source
            self._config_source: Callable[[], SchedulerConfig] = lambda: fixed
        else:
            self._config_source = config_source
        self._state = SchedulerState.IDLE
        self._task: asyncio.Task | None = None
        self._last_tick_at: datetime | None = None
        self._last_outcome: SyncOutcome | None = None
        self._ticks = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_outcome(self) -> SyncOutcome | None:
        return self._last_outcome

    def start(self) -> None:
        """Arm the timer. Calling start() twice is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-scheduler")
        logger.info(
            "Rate scheduler started (initial delay %.0fs)",
            self._config_source().initial_delay_seconds,
        )

    async def stop(self) -> None:
        """Cancel the timer task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._state = SchedulerState.IDLE
        logger.info("Rate scheduler stopped")

    async def tick(self) -> SyncOutcome | None:
        """Run one scheduled tick. Returns None when the tick was skipped."""
        config = self._config_source()
        self._ticks += 1
        self._last_tick_at = datetime.now(timezone.utc)

        if not config.enabled:
            logger.debug("Scheduler disabled (scheduler.enabled=false), tick skipped")
            return None

        self._state = SchedulerState.RUNNING
        try:
            outcome = await self._sync.run_cycle(trigger="scheduler")
        except Exception:
            logger.exception("Scheduled sync crashed outside of run_cycle")
            return None
        finally:
            self._state = SchedulerState.IDLE

        self._last_outcome = outcome
        self._log_outcome(outcome)
        return outcome

    def status(self) -> dict[str, Any]:
        config = self._config_source()
        outcome = self._last_outcome
        return {
            "state": self._state.value,
            "running": self.running,
            "enabled": config.enabled,
            "interval_ms": config.interval_ms,
            "initial_delay_ms": config.initial_delay_ms,
            "ticks": self._ticks,
            "last_tick_at": self._last_tick_at,
            "last_outcome": outcome.model_dump() if outcome is not None else None,
        }

    # --- Internals ---

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        await asyncio.sleep(self._config_source().initial_delay_seconds)

        next_tick = loop.time()
        while True:
            await self.tick()

            next_tick += self._config_source().interval_seconds
            delay = next_tick - loop.time()
            if delay < 0:
                logger.warning(
                    "Sync cycle overran its interval by %.1fs, next tick now",
                    -delay,
                )
                next_tick = loop.time()
                delay = 0
            await asyncio.sleep(delay)

    @staticmethod
    def _log_outcome(outcome: SyncOutcome) -> None:
        kind = outcome.error_kind
        if kind is None:
            logger.info(
                "Scheduled sync complete: %d rows in %.2fs",
                outcome.rows_written, outcome.duration_seconds,
            )
        elif kind == SyncErrorKind.RATE_LIMITED:
            logger.warning(_RATE_LIMIT_HINT)
        elif kind in (SyncErrorKind.PROVIDER, SyncErrorKind.EMPTY_RESULT):
            logger.warning(
                "Scheduled sync failed (%s): %s. Will retry next interval.",
                kind.value, outcome.message,
            )
        else:
            logger.error(
                "Scheduled sync failed (%s): %s",
                kind.value, outcome.message,
                exc_info=outcome.error,
            )
