"""Run and record identifier helpers."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def record_id(point_id: str, partition_key: str) -> str:
    digest = hashlib.sha256(f"{partition_key}|{point_id}".encode("utf-8")).hexdigest()
    return f"{partition_key}-{digest[:24]}"
