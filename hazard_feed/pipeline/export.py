"""Partition JSON export."""

from __future__ import annotations

from pathlib import Path

from hazard_feed.common.fs import write_json
from hazard_feed.common.models import DomainRecord
from hazard_feed.common.time_utils import utc_timestamp_iso


def build_partition_payload(partition_key: str, records: list[DomainRecord], *, refreshed: bool) -> dict:
    return {
        "partition": partition_key,
        "count": len(records),
        "records": [record.to_dict() for record in records],
        "cached": not refreshed,
        "source": "upstream" if refreshed else "store",
        "generated_at": utc_timestamp_iso(),
    }


def write_partition_json(data_dir: Path, partition_key: str, records: list[DomainRecord], *, refreshed: bool) -> Path:
    out_path = data_dir / "out" / f"{partition_key}.json"
    write_json(out_path, build_partition_payload(partition_key, records, refreshed=refreshed))
    return out_path
