from __future__ import annotations

import asyncio

import pytest

from hazard_feed.common.errors import UnknownPartitionError, UpstreamUnavailable
from hazard_feed.common.models import ReferencePoint
from hazard_feed.pipeline.freshness import FreshnessGate
from hazard_feed.pipeline.store import PartitionStore

NOW = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


class CountingSourceCache:
    def __init__(self, points: tuple[ReferencePoint, ...] = (), error: Exception | None = None, delay: float = 0.0):
        self.points = points
        self.error = error
        self.delay = delay
        self.calls = 0

    async def get(self) -> tuple[ReferencePoint, ...]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.points

    def stats(self) -> dict:
        return {}


def _points(active: int, at_risk: int = 0, malformed: int = 0) -> tuple[ReferencePoint, ...]:
    points = [
        ReferencePoint(id=f"a{i}", longitude=1.0, latitude=50.0, is_active=True, risk_metric_a=None, risk_metric_b=None, site_name="A")
        for i in range(active)
    ]
    points += [
        ReferencePoint(id=f"r{i}", longitude=1.0, latitude=50.0, is_active=False, risk_metric_a=1.0, risk_metric_b=2.0, site_name="R")
        for i in range(at_risk)
    ]
    points += [
        ReferencePoint(id=f"m{i}", longitude=None, latitude=None, is_active=True, risk_metric_a=None, risk_metric_b=None, site_name="M")
        for i in range(malformed)
    ]
    return tuple(points)


async def _gate(cache: CountingSourceCache, clock: FakeClock) -> FreshnessGate:
    store = await PartitionStore.open(":memory:", clock=clock)
    return FreshnessGate(store, cache, clock=clock)


@pytest.mark.asyncio
async def test_ensure_fresh_twice_within_window_refreshes_once():
    clock = FakeClock()
    cache = CountingSourceCache(_points(2))
    gate = await _gate(cache, clock)
    try:
        assert await gate.ensure_fresh("hour") is True
        clock.now += 299_000
        assert await gate.ensure_fresh("hour") is False
        assert cache.calls == 1
        assert len(await gate.store.read("hour")) == 2
    finally:
        await gate.store.close()


@pytest.mark.asyncio
async def test_partition_goes_stale_after_window():
    clock = FakeClock()
    cache = CountingSourceCache(_points(1))
    gate = await _gate(cache, clock)
    try:
        await gate.ensure_fresh("day")
        clock.now += 300_000
        assert await gate.is_fresh("day") is False
        assert await gate.ensure_fresh("day") is True
        assert cache.calls == 2
    finally:
        await gate.store.close()


@pytest.mark.asyncio
async def test_concurrent_ensure_fresh_for_same_partition_refreshes_once():
    clock = FakeClock()
    cache = CountingSourceCache(_points(3), delay=0.01)
    gate = await _gate(cache, clock)
    try:
        results = await asyncio.gather(*(gate.ensure_fresh("week") for _ in range(4)))
        assert results.count(True) == 1
        assert cache.calls == 1
    finally:
        await gate.store.close()


@pytest.mark.asyncio
async def test_partitions_are_refreshed_independently():
    clock = FakeClock()
    cache = CountingSourceCache(_points(2))
    gate = await _gate(cache, clock)
    try:
        await gate.ensure_fresh("hour")
        assert await gate.is_fresh("hour") is True
        assert await gate.is_fresh("month") is False
        await gate.ensure_fresh("month")
        assert cache.calls == 2
    finally:
        await gate.store.close()


@pytest.mark.asyncio
async def test_empty_refresh_leaves_partition_stale():
    clock = FakeClock()
    cache = CountingSourceCache(())
    gate = await _gate(cache, clock)
    try:
        assert await gate.ensure_fresh("hour") is True
        assert await gate.is_fresh("hour") is False
        assert await gate.store.get_metadata("hour") is None
        assert await gate.ensure_fresh("hour") is True
        assert cache.calls == 2
    finally:
        await gate.store.close()


@pytest.mark.asyncio
async def test_refresh_records_validation_metrics():
    clock = FakeClock()
    cache = CountingSourceCache(_points(3, malformed=1))
    gate = await _gate(cache, clock)
    try:
        await gate.ensure_fresh("hour")
        summary = await gate.store.validation_metrics_summary()
        assert summary["runs"] == 1
        assert summary["total_records"] == 4
        assert summary["total_errors"] == 1
        assert summary["avg_success_rate"] == 75.0
    finally:
        await gate.store.close()


@pytest.mark.asyncio
async def test_upstream_unavailable_propagates_and_keeps_store_untouched():
    clock = FakeClock()
    cache = CountingSourceCache(error=UpstreamUnavailable("down"))
    gate = await _gate(cache, clock)
    try:
        with pytest.raises(UpstreamUnavailable):
            await gate.ensure_fresh("hour")
        assert await gate.store.get_metadata("hour") is None
    finally:
        await gate.store.close()


@pytest.mark.asyncio
async def test_unknown_partition_is_rejected_before_any_work():
    clock = FakeClock()
    cache = CountingSourceCache(_points(1))
    gate = await _gate(cache, clock)
    try:
        with pytest.raises(UnknownPartitionError):
            await gate.ensure_fresh("year")
        with pytest.raises(UnknownPartitionError):
            await gate.is_fresh("year")
        assert cache.calls == 0
    finally:
        await gate.store.close()
