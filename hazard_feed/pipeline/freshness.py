"""Cache-validity gate: serve stored partitions or refresh them through the pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from hazard_feed.common.constants import PARTITION_WINDOWS_MS
from hazard_feed.common.errors import UnknownPartitionError
from hazard_feed.common.logging import default_logger, log_event
from hazard_feed.common.time_utils import now_ms
from hazard_feed.harvest.source_cache import SourceCache
from hazard_feed.pipeline.derive import (
    DEFAULT_MAX_RECORDS,
    DEFAULT_MIN_MAJOR,
    DEFAULT_SOURCE_LABEL,
    derive_records,
    summarise_points,
)
from hazard_feed.pipeline.store import PartitionStore

STAGE = "freshness"
DEFAULT_WINDOW_SECONDS = 5 * 60


class FreshnessGate:
    def __init__(
        self,
        store: PartitionStore,
        source_cache: SourceCache,
        *,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        partitions: dict[str, int] | None = None,
        min_major: int = DEFAULT_MIN_MAJOR,
        max_records: int = DEFAULT_MAX_RECORDS,
        source_label: str = DEFAULT_SOURCE_LABEL,
        clock: Callable[[], int] = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.source_cache = source_cache
        self.window_ms = int(window_seconds * 1000)
        self.partitions = dict(partitions or PARTITION_WINDOWS_MS)
        self.min_major = min_major
        self.max_records = max_records
        self.source_label = source_label
        self._clock = clock
        self.logger = logger or default_logger()
        self._locks: dict[str, asyncio.Lock] = {}

    def check_partition(self, partition_key: str) -> None:
        if partition_key not in self.partitions:
            raise UnknownPartitionError(f"Unknown partition key: {partition_key}")

    def _lock_for(self, partition_key: str) -> asyncio.Lock:
        lock = self._locks.get(partition_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[partition_key] = lock
        return lock

    async def is_fresh(self, partition_key: str) -> bool:
        self.check_partition(partition_key)
        metadata = await self.store.get_metadata(partition_key)
        if metadata is None:
            return False
        return self._clock() - metadata.last_refreshed < self.window_ms

    async def ensure_fresh(self, partition_key: str) -> bool:
        """Refresh the partition when stale. Returns True when a refresh ran."""
        self.check_partition(partition_key)
        if await self.is_fresh(partition_key):
            log_event(
                self.logger,
                f"partition {partition_key} is fresh",
                level=logging.DEBUG,
                stage=STAGE,
                partition=partition_key,
                event="PARTITION_FRESH",
                status="ok",
            )
            return False

        async with self._lock_for(partition_key):
            # Another caller may have refreshed while this one waited.
            if await self.is_fresh(partition_key):
                return False
            await self._refresh(partition_key)
            return True

    async def _refresh(self, partition_key: str) -> None:
        started = time.monotonic()
        points = await self.source_cache.get()
        records = derive_records(
            points,
            partition_key,
            windows=self.partitions,
            min_major=self.min_major,
            max_records=self.max_records,
            source_label=self.source_label,
            now=self._clock(),
            logger=self.logger,
        )
        await self.store.replace_partition(partition_key, records)
        await self.store.record_validation_metrics(partition_key, **summarise_points(points))

        log_event(
            self.logger,
            f"partition {partition_key} refreshed with {len(records)} records",
            level=logging.INFO if records else logging.WARNING,
            stage=STAGE,
            partition=partition_key,
            event="PARTITION_REFRESHED" if records else "PARTITION_EMPTY",
            status="ok" if records else "empty",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_in=len(points),
            rows_out=len(records),
        )
