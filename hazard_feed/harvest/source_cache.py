"""Single-flight, TTL-bounded cache of the raw upstream snapshot."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from hazard_feed.common.errors import UpstreamUnavailable
from hazard_feed.common.logging import default_logger, log_event
from hazard_feed.common.models import CacheStats, ReferencePoint, SourceCacheState
from hazard_feed.harvest.reference_points import ReferencePointFetcher

STAGE = "source_cache"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class SourceCache:
    """Owns the latest upstream snapshot.

    A snapshot younger than ``ttl_seconds`` is served as is. Otherwise one
    sweep runs and every caller arriving meanwhile awaits that same sweep. A
    failed sweep falls back to the previous snapshot when there is one.
    """

    def __init__(
        self,
        fetcher: ReferencePointFetcher,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.logger = logger or default_logger()
        self._state: SourceCacheState | None = None
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Future | None = None
        self._stats = CacheStats()

    @property
    def state(self) -> SourceCacheState | None:
        return self._state

    def _is_current(self, state: SourceCacheState | None) -> bool:
        return state is not None and self._clock() - state.fetched_at < self.ttl_seconds

    async def get(self) -> tuple[ReferencePoint, ...]:
        state = self._state
        if self._is_current(state):
            self._stats.hits += 1
            log_event(self.logger, "serving cached snapshot", level=logging.DEBUG, stage=STAGE, event="CACHE_HIT")
            return state.points

        self._stats.misses += 1
        async with self._lock:
            state = self._state
            if self._is_current(state):
                return state.points
            if self._inflight is None:
                self._inflight = asyncio.ensure_future(self._refresh())
            inflight = self._inflight
        return await asyncio.shield(inflight)

    async def _refresh(self) -> tuple[ReferencePoint, ...]:
        try:
            try:
                report = await self.fetcher.sweep()
                # A partial sweep with nothing in it never replaces a snapshot.
                if report.is_partial and not report.points:
                    raise UpstreamUnavailable(
                        f"sweep yielded no reference points (breaker_tripped={report.breaker_tripped}, "
                        f"failed_pages={list(report.failed_pages)})"
                    )
            except Exception as exc:
                self._stats.failures += 1
                previous = self._state
                if previous is None:
                    if isinstance(exc, UpstreamUnavailable):
                        raise
                    raise UpstreamUnavailable(f"upstream sweep failed with no snapshot to fall back on: {exc}") from exc
                self._stats.stale_served += 1
                log_event(
                    self.logger,
                    f"refresh failed, serving stale snapshot of {len(previous.points)} points: {exc}",
                    level=logging.WARNING,
                    stage=STAGE,
                    event="CACHE_STALE_FALLBACK",
                    status="stale",
                    rows_out=len(previous.points),
                    error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                )
                return previous.points

            state = SourceCacheState(points=report.points, fetched_at=self._clock(), partial=report.is_partial)
            self._state = state
            self._stats.refreshes += 1
            log_event(
                self.logger,
                f"snapshot refreshed with {len(state.points)} points",
                stage=STAGE,
                event="CACHE_REFRESH",
                status="partial" if state.partial else "ok",
                duration_ms=report.duration_ms,
                rows_out=len(state.points),
            )
            return state.points
        finally:
            self._inflight = None

    def invalidate(self) -> None:
        self._state = None

    def stats(self) -> dict[str, Any]:
        payload = self._stats.to_dict()
        state = self._state
        payload["snapshot_size"] = len(state.points) if state is not None else 0
        payload["fetched_at"] = state.fetched_at if state is not None else None
        payload["partial"] = state.partial if state is not None else False
        return payload
