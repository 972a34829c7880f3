"""CLI entrypoint for the hazard reference feed."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from hazard_feed.common.config_loader import ConfigBundle, load_all_configs, resolve_partitions
from hazard_feed.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, PARTITION_KEYS
from hazard_feed.common.errors import PipelineError
from hazard_feed.common.http import HttpClient
from hazard_feed.common.ids import generate_run_id
from hazard_feed.common.logging import build_logger, log_event
from hazard_feed.pipeline.export import write_partition_json
from hazard_feed.pipeline.reports import write_status_report
from hazard_feed.pipeline.service import FeedService, open_feed_service


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=list(COMMANDS))
    parser.add_argument("--partition", default="all", choices=[*PARTITION_KEYS, "all"])
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


async def execute_partition(command: str, partition: str, service: FeedService, data_dir: Path) -> str:
    refreshed = await service.ensure_fresh(partition)
    if command == "read":
        records = await service.read(partition)
        write_partition_json(data_dir, partition, records, refreshed=refreshed)
    return "refreshed" if refreshed else "fresh"


async def _run_async(
    args: argparse.Namespace,
    bundle: ConfigBundle,
    partitions: list[str],
    data_dir: Path,
    run_id: str,
    logger: logging.Logger,
    http_client: HttpClient | None,
) -> int:
    service = await open_feed_service(bundle, data_dir, http_client=http_client, logger=logger)
    results: dict[str, str] = {}
    had_partial_failure = False

    async with service:
        if args.command != "status":
            for partition in partitions:
                log_event(logger, "stage start", run_id=run_id, stage=args.command, partition=partition, event="STAGE_START", status="ok")
                try:
                    results[partition] = await execute_partition(args.command, partition, service, data_dir)
                except PipelineError as exc:
                    had_partial_failure = True
                    results[partition] = "error"
                    log_event(
                        logger,
                        f"{args.command} failed for partition {partition}: {exc}",
                        level=logging.ERROR,
                        run_id=run_id,
                        stage=args.command,
                        partition=partition,
                        event="STAGE_FAIL",
                        status="error",
                        error_code=exc.error_code,
                    )
                    if args.strict:
                        return EXIT_HARD_FAIL
                except Exception:
                    had_partial_failure = True
                    results[partition] = "error"
                    logger.exception(
                        f"unexpected failure for partition {partition}",
                        extra={
                            "run_id": run_id,
                            "stage": args.command,
                            "partition": partition,
                            "event": "STAGE_FAIL",
                            "status": "error",
                            "error_code": "UNEXPECTED_ERROR",
                        },
                    )
                    if args.strict:
                        return EXIT_HARD_FAIL
                log_event(logger, "stage end", run_id=run_id, stage=args.command, partition=partition, event="STAGE_END", status=results[partition])

        status = await service.status()
        write_status_report(data_dir, run_id=run_id, status=status, partition_results=results)

    if had_partial_failure:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace, *, http_client: HttpClient | None = None) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    partitions = resolve_partitions(args.partition, bundle.partitions)
    return asyncio.run(_run_async(args, bundle, partitions, data_dir, run_id, logger, http_client))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError as exc:
        print(f"{exc.error_code}: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL
    except Exception as exc:
        print(f"UNEXPECTED_ERROR: {exc!r}", file=sys.stderr)
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
