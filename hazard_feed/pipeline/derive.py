"""Derivation of time-partitioned domain records from a raw snapshot."""

from __future__ import annotations

import logging
import random
from typing import Iterable

from hazard_feed.common.constants import PARTITION_WINDOWS_MS
from hazard_feed.common.errors import UnknownPartitionError
from hazard_feed.common.ids import record_id
from hazard_feed.common.logging import default_logger, log_event
from hazard_feed.common.models import DomainRecord, ReferencePoint
from hazard_feed.common.time_utils import now_ms

STAGE = "derive"
DEFAULT_MIN_MAJOR = 10
DEFAULT_MAX_RECORDS = 50
DEFAULT_SOURCE_LABEL = "hazard-reference"


def window_ms(partition_key: str, windows: dict[str, int] | None = None) -> int:
    windows = windows or PARTITION_WINDOWS_MS
    if partition_key not in windows:
        raise UnknownPartitionError(f"Unknown partition key: {partition_key}")
    return int(windows[partition_key])


def split_points(points: Iterable[ReferencePoint]) -> tuple[list[ReferencePoint], int]:
    """Return usable points (first occurrence per id) and the malformed count."""
    valid: list[ReferencePoint] = []
    seen_ids: set[str] = set()
    malformed = 0
    for point in points:
        if not point.has_geometry:
            malformed += 1
            continue
        if point.id in seen_ids:
            continue
        seen_ids.add(point.id)
        valid.append(point)
    return valid, malformed


def summarise_points(points: Iterable[ReferencePoint]) -> dict[str, int]:
    points = list(points)
    valid, malformed = split_points(points)
    return {"total_points": len(points), "valid_points": len(valid), "error_count": malformed}


def select_points(
    points: list[ReferencePoint],
    *,
    min_major: int = DEFAULT_MIN_MAJOR,
    max_records: int = DEFAULT_MAX_RECORDS,
) -> list[tuple[ReferencePoint, str]]:
    majors = [(point, "major") for point in points if point.is_active]
    selected = majors
    if len(majors) < min_major:
        at_risk = [(point, "minor") for point in points if point.is_at_risk]
        selected = majors + at_risk[: max(max_records - len(majors), 0)]
    return selected[:max_records]


def derive_records(
    points: Iterable[ReferencePoint],
    partition_key: str,
    *,
    windows: dict[str, int] | None = None,
    min_major: int = DEFAULT_MIN_MAJOR,
    max_records: int = DEFAULT_MAX_RECORDS,
    source_label: str = DEFAULT_SOURCE_LABEL,
    now: int | None = None,
    rng: random.Random | None = None,
    logger: logging.Logger | None = None,
) -> list[DomainRecord]:
    window = window_ms(partition_key, windows)
    current = now_ms() if now is None else now
    rng = rng or random.Random()

    valid, malformed = split_points(points)
    if malformed:
        log_event(
            logger or default_logger(),
            f"dropped {malformed} points without usable geometry",
            level=logging.WARNING,
            stage=STAGE,
            partition=partition_key,
            event="POINT_MALFORMED",
            status="dropped",
            rows_in=len(valid) + malformed,
            rows_out=len(valid),
        )

    records = []
    for point, severity in select_points(valid, min_major=min_major, max_records=max_records):
        # Synthesized: any instant inside the requested window, not the upstream event time.
        timestamp = int(current - rng.uniform(0, window))
        records.append(
            DomainRecord(
                id=record_id(point.id, partition_key),
                timestamp=max(timestamp, current - window),
                longitude=float(point.longitude),
                latitude=float(point.latitude),
                severity=severity,
                area_affected=point.site_name,
                source=source_label,
                partition_key=partition_key,
            )
        )
    return records
