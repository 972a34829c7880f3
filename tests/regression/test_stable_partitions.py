from __future__ import annotations

import pytest

from hazard_feed.harvest.reference_points import ReferencePointFetcher
from hazard_feed.harvest.source_cache import SourceCache
from hazard_feed.pipeline.freshness import FreshnessGate
from hazard_feed.pipeline.store import PartitionStore

NOW = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


async def _no_sleep(_seconds: float) -> None:
    return None


class PagedUpstream:
    def __init__(self, items: list[dict]):
        self.items = items
        self.sweeps = 0

    async def get_json(self, url, *, params=None, **_kwargs):
        skip = params["skip"]
        if skip == 0:
            self.sweeps += 1
        return self.items[skip : skip + 10]


def _items(active: int, at_risk: int) -> list[dict]:
    items = [{"id": f"a{i}", "longitude": 5.0, "latitude": 45.0, "isActive": True} for i in range(active)]
    items += [
        {"id": f"r{i}", "longitude": 5.0, "latitude": 45.0, "isActive": False, "riskMetricA": 1, "riskMetricB": 1}
        for i in range(at_risk)
    ]
    return items


async def _gate(upstream: PagedUpstream, clock: FakeClock) -> FreshnessGate:
    fetcher = ReferencePointFetcher(upstream, base_url="https://example.test", sleep=_no_sleep)
    cache = SourceCache(fetcher, ttl_seconds=1, clock=lambda: clock.now / 1000)
    store = await PartitionStore.open(":memory:", clock=clock)
    return FreshnessGate(store, cache, clock=clock)


@pytest.mark.regression
@pytest.mark.asyncio
async def test_record_ids_survive_repeated_refreshes():
    clock = FakeClock()
    upstream = PagedUpstream(_items(4, 12))
    gate = await _gate(upstream, clock)
    try:
        await gate.ensure_fresh("day")
        first = await gate.store.read("day")
        clock.now += 600_000
        await gate.ensure_fresh("day")
        second = await gate.store.read("day")

        assert upstream.sweeps == 2
        assert [record.id for record in first] == [record.id for record in second]
        assert len(second) == 16
        assert len({record.id for record in second}) == 16
    finally:
        await gate.store.close()


@pytest.mark.regression
@pytest.mark.asyncio
async def test_upstream_turning_empty_clears_partition():
    clock = FakeClock()
    upstream = PagedUpstream(_items(2, 0))
    gate = await _gate(upstream, clock)
    try:
        await gate.ensure_fresh("hour")
        assert len(await gate.store.read("hour")) == 2

        upstream.items = []
        clock.now += 600_000
        assert await gate.ensure_fresh("hour") is True

        assert await gate.store.read("hour") == []
        assert await gate.is_fresh("hour") is False
    finally:
        await gate.store.close()
