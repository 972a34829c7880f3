"""Feed service: the two operations exposed to the request-handling layer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from types import TracebackType
from typing import Any, Awaitable, Callable

from hazard_feed.common.config_loader import ConfigBundle
from hazard_feed.common.http import HttpClient, TimeoutConfig
from hazard_feed.common.logging import default_logger
from hazard_feed.common.models import DomainRecord
from hazard_feed.common.time_utils import ms_to_iso
from hazard_feed.harvest.reference_points import ReferencePointFetcher
from hazard_feed.harvest.source_cache import SourceCache
from hazard_feed.pipeline.freshness import FreshnessGate
from hazard_feed.pipeline.store import PartitionStore


class FeedService:
    def __init__(
        self,
        gate: FreshnessGate,
        *,
        http_client: HttpClient | None = None,
    ) -> None:
        self.gate = gate
        self.store = gate.store
        self.source_cache = gate.source_cache
        self.http_client = http_client

    async def ensure_fresh(self, partition_key: str) -> bool:
        return await self.gate.ensure_fresh(partition_key)

    async def read(self, partition_key: str) -> list[DomainRecord]:
        self.gate.check_partition(partition_key)
        return await self.store.read(partition_key)

    async def fetch_partition(self, partition_key: str) -> list[DomainRecord]:
        await self.ensure_fresh(partition_key)
        return await self.read(partition_key)

    async def status(self) -> dict[str, Any]:
        partitions = {}
        for metadata in await self.store.list_metadata():
            payload = metadata.to_dict()
            payload["last_refreshed_iso"] = ms_to_iso(metadata.last_refreshed)
            payload["fresh"] = await self.gate.is_fresh(metadata.partition_key)
            partitions[metadata.partition_key] = payload
        return {
            "partitions": partitions,
            "validation_metrics": await self.store.validation_metrics_summary(),
            "source_cache": self.source_cache.stats(),
        }

    async def close(self) -> None:
        try:
            await self.store.close()
        finally:
            if self.http_client is not None:
                await self.http_client.close()

    async def __aenter__(self) -> "FeedService":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


async def open_feed_service(
    bundle: ConfigBundle,
    data_dir: Path,
    *,
    http_client: HttpClient | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    logger: logging.Logger | None = None,
) -> FeedService:
    feed = bundle.feed
    logger = logger or default_logger()
    timeout_seconds = float(feed["upstream"]["timeout_seconds"])
    client = http_client or HttpClient(timeout=TimeoutConfig(connect=timeout_seconds, read=timeout_seconds))

    fetcher = ReferencePointFetcher.from_config(
        client,
        feed,
        field_candidates=bundle.field_candidates,
        sleep=sleep,
        logger=logger,
    )
    source_cache = SourceCache(fetcher, ttl_seconds=float(feed["source_cache"]["ttl_seconds"]), logger=logger)

    database = feed["storage"]["database"]
    dsn = database if database == ":memory:" else str(data_dir / database)
    store = await PartitionStore.open(dsn)

    gate = FreshnessGate(
        store,
        source_cache,
        window_seconds=float(feed["freshness"]["window_seconds"]),
        partitions=bundle.partitions,
        min_major=int(feed["derive"]["min_major"]),
        max_records=int(feed["derive"]["max_records"]),
        source_label=str(feed["derive"]["source_label"]),
        logger=logger,
    )
    return FeedService(gate, http_client=client if http_client is None else None)
