"""Partitioned record store backed by SQLite through aiosqlite."""

from __future__ import annotations

import asyncio
import os
from typing import Any, Callable, Sequence

import aiosqlite

from hazard_feed.common.constants import SEVERITY_RANK
from hazard_feed.common.errors import PersistenceFailure
from hazard_feed.common.models import DomainRecord, PartitionMetadata
from hazard_feed.common.time_utils import now_ms

RECORD_COLUMNS = (
    "id",
    "timestamp",
    "longitude",
    "latitude",
    "severity",
    "area_affected",
    "source",
    "partition_key",
)
DAY_MS = 24 * 60 * 60 * 1000

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS domain_records (
        id TEXT PRIMARY KEY,
        timestamp INTEGER NOT NULL,
        longitude REAL NOT NULL,
        latitude REAL NOT NULL,
        severity TEXT NOT NULL,
        area_affected TEXT,
        source TEXT,
        partition_key TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_domain_records_timestamp ON domain_records (timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_domain_records_partition ON domain_records (partition_key)",
    "CREATE INDEX IF NOT EXISTS idx_domain_records_severity ON domain_records (severity)",
    """
    CREATE TABLE IF NOT EXISTS partition_metadata (
        partition_key TEXT PRIMARY KEY,
        last_refreshed INTEGER NOT NULL,
        record_count INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS validation_metrics (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        partition_key TEXT NOT NULL,
        recorded_at INTEGER NOT NULL,
        total_points INTEGER NOT NULL,
        valid_points INTEGER NOT NULL,
        error_count INTEGER NOT NULL,
        success_rate REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_validation_metrics_recorded_at ON validation_metrics (recorded_at)",
)


def _severity_order_sql() -> str:
    cases = " ".join(f"WHEN '{severity}' THEN {rank}" for severity, rank in SEVERITY_RANK.items())
    return f"CASE severity {cases} ELSE {len(SEVERITY_RANK)} END"


def _database_path(dsn: str) -> str:
    if dsn.startswith("sqlite:///"):
        return dsn[len("sqlite:///") :]
    if dsn.startswith("sqlite://"):
        return dsn[len("sqlite://") :]
    return dsn or ":memory:"


class PartitionStore:
    """Owns partition rows, partition metadata and validation metrics.

    Every statement on the shared connection runs under one asyncio lock, so a
    reader never sees another coroutine's open transaction.
    """

    def __init__(self, conn: aiosqlite.Connection, *, clock: Callable[[], int] = now_ms) -> None:
        self._conn = conn
        self._conn.row_factory = aiosqlite.Row
        self._lock = asyncio.Lock()
        self._clock = clock

    @classmethod
    async def open(cls, dsn: str, *, clock: Callable[[], int] = now_ms) -> "PartitionStore":
        path = _database_path(dsn)
        if path != ":memory:":
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
        conn = await aiosqlite.connect(path, isolation_level=None)
        store = cls(conn, clock=clock)
        await store._migrate()
        return store

    async def close(self) -> None:
        async with self._lock:
            await self._conn.close()

    async def _migrate(self) -> None:
        async with self._lock:
            for statement in SCHEMA:
                await self._conn.execute(statement)

    async def replace_partition(self, partition_key: str, records: Sequence[DomainRecord]) -> None:
        foreign = sorted({record.partition_key for record in records} - {partition_key})
        if foreign:
            raise PersistenceFailure(
                f"Refusing to replace partition {partition_key} with records keyed to {', '.join(foreign)}"
            )
        rows = [tuple(getattr(record, column) for column in RECORD_COLUMNS) for record in records]
        placeholders = ", ".join("?" for _ in RECORD_COLUMNS)
        async with self._lock:
            try:
                await self._conn.execute("BEGIN IMMEDIATE")
                await self._conn.execute("DELETE FROM domain_records WHERE partition_key = ?", (partition_key,))
                if rows:
                    await self._conn.executemany(
                        f"INSERT INTO domain_records ({', '.join(RECORD_COLUMNS)}) VALUES ({placeholders})",
                        rows,
                    )
                    await self._conn.execute(
                        """
                        INSERT INTO partition_metadata (partition_key, last_refreshed, record_count)
                        VALUES (?, ?, ?)
                        ON CONFLICT(partition_key) DO UPDATE SET
                            last_refreshed = excluded.last_refreshed,
                            record_count = excluded.record_count
                        """,
                        (partition_key, self._clock(), len(rows)),
                    )
                else:
                    await self._conn.execute(
                        "DELETE FROM partition_metadata WHERE partition_key = ?",
                        (partition_key,),
                    )
                await self._conn.commit()
            except BaseException as exc:
                await self._conn.rollback()
                if isinstance(exc, aiosqlite.Error):
                    raise PersistenceFailure(f"Failed to replace partition {partition_key}: {exc}") from exc
                raise

    async def read(self, partition_key: str) -> list[DomainRecord]:
        async with self._lock:
            cursor = await self._conn.execute(
                f"""
                SELECT {', '.join(RECORD_COLUMNS)}
                FROM domain_records
                WHERE partition_key = ?
                ORDER BY {_severity_order_sql()}, id
                """,
                (partition_key,),
            )
            rows = await cursor.fetchall()
        return [DomainRecord(**{column: row[column] for column in RECORD_COLUMNS}) for row in rows]

    async def get_metadata(self, partition_key: str) -> PartitionMetadata | None:
        async with self._lock:
            cursor = await self._conn.execute(
                "SELECT partition_key, last_refreshed, record_count FROM partition_metadata WHERE partition_key = ?",
                (partition_key,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return PartitionMetadata(
            partition_key=row["partition_key"],
            last_refreshed=int(row["last_refreshed"]),
            record_count=int(row["record_count"]),
        )

    async def list_metadata(self) -> list[PartitionMetadata]:
        async with self._lock:
            cursor = await self._conn.execute(
                "SELECT partition_key, last_refreshed, record_count FROM partition_metadata ORDER BY partition_key"
            )
            rows = await cursor.fetchall()
        return [
            PartitionMetadata(
                partition_key=row["partition_key"],
                last_refreshed=int(row["last_refreshed"]),
                record_count=int(row["record_count"]),
            )
            for row in rows
        ]

    async def record_validation_metrics(
        self,
        partition_key: str,
        *,
        total_points: int,
        valid_points: int,
        error_count: int,
    ) -> None:
        success_rate = 0.0 if total_points == 0 else round((valid_points / total_points) * 100, 2)
        async with self._lock:
            await self._conn.execute(
                """
                INSERT INTO validation_metrics
                    (partition_key, recorded_at, total_points, valid_points, error_count, success_rate)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (partition_key, self._clock(), total_points, valid_points, error_count, success_rate),
            )

    async def validation_metrics_summary(self, days: int = 30) -> dict[str, Any]:
        since = self._clock() - days * DAY_MS
        async with self._lock:
            cursor = await self._conn.execute(
                """
                SELECT AVG(success_rate) AS avg_success_rate,
                       SUM(error_count) AS total_errors,
                       SUM(total_points) AS total_records,
                       COUNT(*) AS runs
                FROM validation_metrics
                WHERE recorded_at >= ?
                """,
                (since,),
            )
            row = await cursor.fetchone()
        return {
            "days": days,
            "runs": int(row["runs"] or 0),
            "avg_success_rate": round(float(row["avg_success_rate"] or 0.0), 2),
            "total_errors": int(row["total_errors"] or 0),
            "total_records": int(row["total_records"] or 0),
        }
