"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from hazard_feed.common.fs import write_json


def write_status_report(
    data_dir: Path,
    *,
    run_id: str,
    status: dict,
    partition_results: dict[str, str] | None = None,
) -> Path:
    results = partition_results or {}
    failed = sorted(key for key, outcome in results.items() if outcome == "error")
    stale = sorted(key for key, payload in status.get("partitions", {}).items() if not payload.get("fresh"))

    overall = "success"
    if failed:
        overall = "error"
    elif stale or status.get("source_cache", {}).get("partial"):
        overall = "partial"

    report_path = data_dir / "out" / "reports" / "status.json"
    payload = {
        "run_id": run_id,
        "status": overall,
        "failed_partitions": failed,
        "stale_partitions": stale,
        "partition_results": results,
        "partitions": status.get("partitions", {}),
        "validation_metrics": status.get("validation_metrics", {}),
        "source_cache": status.get("source_cache", {}),
    }
    write_json(report_path, payload)
    return report_path
