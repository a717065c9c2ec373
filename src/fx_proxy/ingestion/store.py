"""Storage backend: Protocol definition, SQLite implementation, factory.

Every record lives in one partitioned key-value table, ``fx_items``, keyed by
``(pk, sk)``:

    RATES#<base>   DATE#<YYYY-MM-DD>   rate snapshot
    BUDGET#DAILY   DATE#<YYYY-MM-DD>   daily external-call counter

The composite primary key is a B-tree, so "latest" is a reverse seek within
one partition and "range" is a bounded forward scan. Neither needs a
secondary index or post-sorting in Python.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, date, datetime, timedelta
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from fx_proxy.core.config import StorageConfig
from fx_proxy.core.exceptions import StorageError
from fx_proxy.core.models import (
    BUDGET_PARTITION,
    DATE_SORT_PREFIX,
    DailyBudgetCounter,
    RateSnapshot,
    StorageBackend as StorageBackendEnum,
    date_sort_key,
    rates_partition_key,
)

logger = logging.getLogger(__name__)

_TABLE = "fx_items"


@runtime_checkable
class TimeSeriesStore(Protocol):
    """Abstract storage interface for rate snapshots and budget counters."""

    async def put(self, snapshot: RateSnapshot) -> None: ...
    async def query_latest(self, base: str) -> RateSnapshot | None: ...
    async def query_range(
        self, base: str, start_date: date, end_date: date
    ) -> list[RateSnapshot]: ...
    async def increment_budget_counter(
        self, counter_date: date, budget: int
    ) -> int | None: ...
    async def get_budget_counter(
        self, counter_date: date
    ) -> DailyBudgetCounter | None: ...
    async def purge_expired(self, now: datetime | None = None) -> int: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the time-series store.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                f"""CREATE TABLE IF NOT EXISTS {_TABLE} (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    rates_json TEXT,
                    source_ts TEXT,
                    fetched_at TEXT,
                    call_count INTEGER,
                    ttl INTEGER,
                    PRIMARY KEY (pk, sk)
                )""",
                f"CREATE INDEX IF NOT EXISTS idx_{_TABLE}_ttl ON {_TABLE}(ttl)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._budget_retention = timedelta(days=config.budget_retention_days)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA busy_timeout=5000")
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

    # --- Rate Snapshots ---

    async def put(self, snapshot: RateSnapshot) -> None:
        """Upsert a snapshot; the same (base, date) overwrites the value fields."""
        try:
            await self._db.execute(
                f"""INSERT INTO {_TABLE}
                   (pk, sk, rates_json, source_ts, fetched_at, ttl)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(pk, sk) DO UPDATE SET
                       rates_json = excluded.rates_json,
                       source_ts = excluded.source_ts,
                       fetched_at = excluded.fetched_at,
                       ttl = excluded.ttl""",
                (
                    snapshot.partition_key,
                    snapshot.sort_key,
                    json.dumps(snapshot.rates),
                    snapshot.source_timestamp.isoformat(),
                    snapshot.fetched_at.isoformat(),
                    int(snapshot.expiry.timestamp()) if snapshot.expiry else None,
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to put rate snapshot: {e}",
                context={
                    "operation": "put",
                    "table": _TABLE,
                    "pk": snapshot.partition_key,
                    "sk": snapshot.sort_key,
                },
            ) from e

    async def query_latest(self, base: str) -> RateSnapshot | None:
        """Snapshot with the greatest date for `base`, or None."""
        try:
            async with self._db.execute(
                f"""SELECT * FROM {_TABLE}
                   WHERE pk = ?
                   ORDER BY sk DESC LIMIT 1""",
                (rates_partition_key(base),),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_snapshot(row)
        except Exception as e:
            raise StorageError(
                f"Failed to query latest snapshot: {e}",
                context={"operation": "query_latest", "table": _TABLE, "base": base},
            ) from e

    async def query_range(
        self, base: str, start_date: date, end_date: date
    ) -> list[RateSnapshot]:
        """Snapshots with start_date <= date <= end_date, ascending by date."""
        try:
            async with self._db.execute(
                f"""SELECT * FROM {_TABLE}
                   WHERE pk = ? AND sk BETWEEN ? AND ?
                   ORDER BY sk ASC""",
                (
                    rates_partition_key(base),
                    date_sort_key(start_date),
                    date_sort_key(end_date),
                ),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_snapshot(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to query snapshot range: {e}",
                context={
                    "operation": "query_range",
                    "table": _TABLE,
                    "base": base,
                    "start": start_date.isoformat(),
                    "end": end_date.isoformat(),
                },
            ) from e

    # --- Daily Budget Counter ---

    async def increment_budget_counter(
        self, counter_date: date, budget: int
    ) -> int | None:
        """Atomically add one to the day's counter if it is below `budget`.

        A missing row counts as zero. The bound check and the increment are a
        single statement, so concurrent callers cannot overshoot the budget.

        Returns:
            The counter value after the increment, or None when the budget is
            already spent for that date.
        """
        if budget < 1:
            return None
        ttl = int(
            (
                datetime.combine(counter_date, datetime.min.time(), tzinfo=UTC)
                + self._budget_retention
            ).timestamp()
        )
        try:
            async with self._db.execute(
                f"""INSERT INTO {_TABLE} (pk, sk, call_count, ttl)
                   VALUES (?, ?, 1, ?)
                   ON CONFLICT(pk, sk) DO UPDATE SET call_count = call_count + 1
                   WHERE call_count IS NULL OR call_count < ?
                   RETURNING call_count""",
                (BUDGET_PARTITION, date_sort_key(counter_date), ttl, budget),
            ) as cursor:
                rows = await cursor.fetchall()
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to increment budget counter: {e}",
                context={
                    "operation": "increment",
                    "table": _TABLE,
                    "date": counter_date.isoformat(),
                },
            ) from e
        if not rows:
            return None
        return rows[0]["call_count"]

    async def get_budget_counter(
        self, counter_date: date
    ) -> DailyBudgetCounter | None:
        try:
            async with self._db.execute(
                f"SELECT call_count FROM {_TABLE} WHERE pk = ? AND sk = ?",
                (BUDGET_PARTITION, date_sort_key(counter_date)),
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to read budget counter: {e}",
                context={"operation": "query", "table": _TABLE},
            ) from e
        if row is None:
            return None
        return DailyBudgetCounter(counter_date=counter_date, count=row["call_count"] or 0)

    # --- Retention ---

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete rows whose retention ttl has passed. Returns rows removed."""
        now = now or datetime.now(UTC)
        try:
            cursor = await self._db.execute(
                f"DELETE FROM {_TABLE} WHERE ttl IS NOT NULL AND ttl <= ?",
                (int(now.timestamp()),),
            )
            removed = cursor.rowcount
            await cursor.close()
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to purge expired rows: {e}",
                context={"operation": "purge", "table": _TABLE},
            ) from e
        if removed:
            logger.info("Purged %d expired rows", removed)
        return removed

    # --- Row Mapping Helpers ---

    @staticmethod
    def _row_to_snapshot(row: aiosqlite.Row) -> RateSnapshot:
        ttl = row["ttl"]
        return RateSnapshot(
            base=row["pk"].split("#", 1)[1],
            rate_date=date.fromisoformat(row["sk"][len(DATE_SORT_PREFIX) :]),
            rates=json.loads(row["rates_json"]) if row["rates_json"] else {},
            source_timestamp=datetime.fromisoformat(row["source_ts"]),
            fetched_at=datetime.fromisoformat(row["fetched_at"]),
            expiry=datetime.fromtimestamp(ttl, tz=UTC) if ttl is not None else None,
        )


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackendEnum.SQLITE:
        store = SqliteStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
