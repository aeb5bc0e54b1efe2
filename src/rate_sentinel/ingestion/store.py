"""Rate history storage: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, ClassVar, Protocol, runtime_checkable

import aiosqlite

from rate_sentinel.core.config import StorageConfig
from rate_sentinel.core.exceptions import StorageError
from rate_sentinel.core.models import RateSample

logger = logging.getLogger(__name__)


@runtime_checkable
class RateHistoryStore(Protocol):
    """Append-only time-series persistence keyed by (symbol, observed_at)."""

    async def append(self, samples: list[RateSample]) -> int: ...
    async def latest_by_symbol(self, symbol: str) -> RateSample | None: ...
    async def all_latest(self) -> list[RateSample]: ...
    async def all_symbols(self) -> list[str]: ...
    async def in_range(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> list[RateSample]: ...
    async def max_in(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> Decimal | None: ...
    async def min_in(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> Decimal | None: ...
    async def avg_in(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> Decimal | None: ...
    async def get_statistics(self) -> dict[str, Any]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteRateStore:
    """SQLite implementation of the rate history store.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.

    Rates are stored as decimal TEXT so that values round-trip exactly;
    max/min/avg are therefore computed in ``Decimal`` rather than in SQL.
    There is no uniqueness constraint on (symbol, observed_at):
    repeated fetches append duplicate rows.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS rate_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    rate TEXT NOT NULL,
                    observed_at INTEGER NOT NULL,
                    recorded_at TEXT NOT NULL
                )""",
                "CREATE INDEX IF NOT EXISTS idx_rate_history_symbol_time "
                "ON rate_history(symbol, observed_at)",
                "CREATE INDEX IF NOT EXISTS idx_rate_history_observed_at "
                "ON rate_history(observed_at)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    def _conn(self, operation: str) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(
                "Store is not initialized",
                context={"operation": operation, "table": "rate_history"},
            )
        return self._db

    # --- Writes ---

    async def append(self, samples: list[RateSample]) -> int:
        """Insert all samples in one batch. Returns rows written."""
        if not samples:
            return 0

        db = self._conn("insert")
        rows = [
            (s.symbol, str(s.rate), s.observed_at, s.recorded_at.isoformat())
            for s in samples
        ]
        try:
            cursor = await db.executemany(
                """INSERT INTO rate_history (symbol, rate, observed_at, recorded_at)
                   VALUES (?, ?, ?, ?)""",
                rows,
            )
            written = cursor.rowcount if cursor.rowcount >= 0 else len(rows)
            await db.commit()
        except Exception as e:
            try:
                await db.rollback()
            except Exception as rollback_error:
                logger.warning("Rollback after failed append also failed: %s", rollback_error)
            raise StorageError(
                f"Failed to append rate samples: {e}",
                context={
                    "operation": "insert",
                    "table": "rate_history",
                    "rows": len(rows),
                },
            ) from e

        logger.debug("Appended %d rate samples", written)
        return written

    # --- Point Lookups ---

    async def latest_by_symbol(self, symbol: str) -> RateSample | None:
        rows = await self._fetch(
            """SELECT * FROM rate_history WHERE symbol = ?
               ORDER BY observed_at DESC, id DESC LIMIT 1""",
            (symbol.upper(),),
            operation="query",
        )
        return self._row_to_sample(rows[0]) if rows else None

    async def all_latest(self) -> list[RateSample]:
        """Most recent sample for every stored symbol, ordered by symbol."""
        rows = await self._fetch(
            """SELECT symbol, rate, observed_at, recorded_at FROM (
                   SELECT *, ROW_NUMBER() OVER (
                       PARTITION BY symbol ORDER BY observed_at DESC, id DESC
                   ) AS rn
                   FROM rate_history
               )
               WHERE rn = 1
               ORDER BY symbol""",
            (),
            operation="query",
        )
        return [self._row_to_sample(row) for row in rows]

    async def all_symbols(self) -> list[str]:
        rows = await self._fetch(
            "SELECT DISTINCT symbol FROM rate_history ORDER BY symbol",
            (),
            operation="query",
        )
        return [row["symbol"] for row in rows]

    # --- Range Queries ---

    async def in_range(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> list[RateSample]:
        """Samples with start_epoch <= observed_at <= end_epoch, oldest first."""
        rows = await self._fetch(
            """SELECT * FROM rate_history
               WHERE symbol = ? AND observed_at >= ? AND observed_at <= ?
               ORDER BY observed_at ASC, id ASC""",
            (symbol.upper(), start_epoch, end_epoch),
            operation="query",
        )
        return [self._row_to_sample(row) for row in rows]

    async def max_in(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> Decimal | None:
        rates = await self._rates_in(symbol, start_epoch, end_epoch)
        return max(rates) if rates else None

    async def min_in(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> Decimal | None:
        rates = await self._rates_in(symbol, start_epoch, end_epoch)
        return min(rates) if rates else None

    async def avg_in(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> Decimal | None:
        rates = await self._rates_in(symbol, start_epoch, end_epoch)
        if not rates:
            return None
        return sum(rates, Decimal(0)) / len(rates)

    async def _rates_in(
        self, symbol: str, start_epoch: int, end_epoch: int
    ) -> list[Decimal]:
        rows = await self._fetch(
            """SELECT rate FROM rate_history
               WHERE symbol = ? AND observed_at >= ? AND observed_at <= ?""",
            (symbol.upper(), start_epoch, end_epoch),
            operation="aggregate",
        )
        return [Decimal(row["rate"]) for row in rows]

    # --- Statistics ---

    async def get_statistics(self) -> dict[str, Any]:
        rows = await self._fetch(
            """SELECT COUNT(*) AS total,
                      COUNT(DISTINCT symbol) AS symbols,
                      MIN(observed_at) AS earliest,
                      MAX(observed_at) AS latest
               FROM rate_history""",
            (),
            operation="query",
        )
        row = rows[0]
        return {
            "total_samples": row["total"],
            "unique_symbols": row["symbols"],
            "earliest_observed_at": row["earliest"],
            "latest_observed_at": row["latest"],
        }

    # --- Helpers ---

    async def _fetch(
        self, sql: str, params: tuple, operation: str
    ) -> list[aiosqlite.Row]:
        db = self._conn(operation)
        try:
            async with db.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except Exception as e:
            raise StorageError(
                f"Failed to query rate history: {e}",
                context={"operation": operation, "table": "rate_history"},
            ) from e

    @staticmethod
    def _row_to_sample(row: aiosqlite.Row) -> RateSample:
        return RateSample(
            symbol=row["symbol"],
            rate=Decimal(row["rate"]),
            observed_at=row["observed_at"],
            recorded_at=datetime.fromisoformat(row["recorded_at"]),
        )


async def create_store(config: StorageConfig) -> SqliteRateStore:
    """Create and initialize the rate history store from configuration."""
    store = SqliteRateStore(config)
    await store.initialize()
    return store
