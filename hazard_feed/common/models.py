"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class ReferencePoint:
    id: str
    longitude: float | None
    latitude: float | None
    is_active: bool
    risk_metric_a: float | None
    risk_metric_b: float | None
    site_name: str

    @property
    def has_geometry(self) -> bool:
        if self.longitude is None or self.latitude is None:
            return False
        return -180.0 <= self.longitude <= 180.0 and -90.0 <= self.latitude <= 90.0

    @property
    def is_at_risk(self) -> bool:
        return not self.is_active and self.risk_metric_a is not None and self.risk_metric_b is not None


@dataclass(frozen=True)
class DomainRecord:
    id: str
    timestamp: int
    longitude: float
    latitude: float
    severity: str
    area_affected: str
    source: str
    partition_key: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PartitionMetadata:
    partition_key: str
    last_refreshed: int
    record_count: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SweepReport:
    points: tuple[ReferencePoint, ...] = ()
    pages_fetched: int = 0
    failed_pages: tuple[int, ...] = ()
    breaker_tripped: bool = False
    skipped_items: int = 0
    duration_ms: int = 0

    @property
    def is_partial(self) -> bool:
        return self.breaker_tripped or bool(self.failed_pages)


@dataclass(frozen=True)
class SourceCacheState:
    points: tuple[ReferencePoint, ...]
    fetched_at: float
    partial: bool = False


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    refreshes: int = 0
    failures: int = 0
    stale_served: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
