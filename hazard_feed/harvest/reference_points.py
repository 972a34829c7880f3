"""Reference point harvest: paginated upstream sweep with retry and circuit breaking."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from tenacity import RetryCallState

from hazard_feed.common.constants import DEFAULT_FIELD_CANDIDATES
from hazard_feed.common.geometry import extract_point_from_geometry, safe_float
from hazard_feed.common.http import HttpClient, HttpRequestError
from hazard_feed.common.logging import default_logger, log_event
from hazard_feed.common.models import ReferencePoint, SweepReport
from hazard_feed.common.retry import CircuitBreaker, RetryPolicy

STAGE = "harvest"
TRUE_STRINGS = {"true", "t", "1", "yes", "y", "active", "flooding"}
UNKNOWN_SITE = "Unknown location"


def _lookup_first(attributes: dict, candidates: list[str]) -> object | None:
    for key in candidates:
        if key in attributes and attributes[key] not in (None, ""):
            return attributes[key]
    return None


def _parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return False


def parse_reference_point(raw: object, field_candidates: dict[str, list[str]] | None = None) -> ReferencePoint | None:
    """Map one upstream item onto a ReferencePoint, or None when it has no usable id."""
    if not isinstance(raw, dict):
        return None
    fields = field_candidates or DEFAULT_FIELD_CANDIDATES

    raw_id = _lookup_first(raw, fields["id"])
    point_id = str(raw_id).strip() if raw_id is not None else ""
    if not point_id:
        return None

    lon = safe_float(_lookup_first(raw, fields["longitude"]))
    lat = safe_float(_lookup_first(raw, fields["latitude"]))
    geometry = raw.get("geometry") or None
    if (lat is None or lon is None) and geometry:
        lat, lon = extract_point_from_geometry(geometry)

    site_name = _lookup_first(raw, fields["site_name"])
    return ReferencePoint(
        id=point_id,
        longitude=lon,
        latitude=lat,
        is_active=_parse_bool(_lookup_first(raw, fields["is_active"])),
        risk_metric_a=safe_float(_lookup_first(raw, fields["risk_metric_a"])),
        risk_metric_b=safe_float(_lookup_first(raw, fields["risk_metric_b"])),
        site_name=str(site_name).strip()[:255] if site_name is not None else UNKNOWN_SITE,
    )


class ReferencePointFetcher:
    def __init__(
        self,
        client: HttpClient,
        *,
        base_url: str,
        page_size: int = 10,
        skip_param: str = "skip",
        limit_param: str | None = None,
        politeness_delay_seconds: float = 1.0,
        max_pages: int = 10_000,
        retry_policy: RetryPolicy | None = None,
        breaker_threshold: int = 10,
        field_candidates: dict[str, list[str]] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.base_url = base_url
        self.page_size = page_size
        self.skip_param = skip_param
        self.limit_param = limit_param
        self.politeness_delay_seconds = politeness_delay_seconds
        self.max_pages = max_pages
        self.retry_policy = retry_policy or RetryPolicy()
        self.breaker_threshold = breaker_threshold
        self.field_candidates = field_candidates or DEFAULT_FIELD_CANDIDATES
        self._sleep = sleep
        self.logger = logger or default_logger()

    @classmethod
    def from_config(
        cls,
        client: HttpClient,
        feed_cfg: dict,
        *,
        field_candidates: dict[str, list[str]] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> "ReferencePointFetcher":
        upstream = feed_cfg["upstream"]
        return cls(
            client,
            base_url=upstream["base_url"],
            page_size=int(upstream["page_size"]),
            skip_param=upstream["skip_param"],
            limit_param=upstream.get("limit_param"),
            politeness_delay_seconds=float(upstream["politeness_delay_seconds"]),
            max_pages=int(upstream.get("max_pages", 10_000)),
            retry_policy=RetryPolicy.from_config(feed_cfg["retry"]),
            breaker_threshold=int(feed_cfg["retry"]["breaker_threshold"]),
            field_candidates=field_candidates,
            sleep=sleep,
            logger=logger,
        )

    async def fetch_all(self) -> list[ReferencePoint]:
        report = await self.sweep()
        return list(report.points)

    async def sweep(self) -> SweepReport:
        started = time.monotonic()
        breaker = CircuitBreaker(self.breaker_threshold)
        points: list[ReferencePoint] = []
        seen_ids: set[str] = set()
        failed_pages: list[int] = []
        pages_fetched = 0
        skipped_items = 0
        tripped = False
        skip = 0

        for _ in range(self.max_pages):
            try:
                payload = await self._fetch_page(skip, breaker)
            except HttpRequestError as exc:
                if breaker.is_open:
                    tripped = True
                    log_event(
                        self.logger,
                        f"circuit breaker open after {breaker.consecutive_failures} consecutive failures",
                        level=logging.WARNING,
                        stage=STAGE,
                        event="BREAKER_TRIPPED",
                        status="error",
                        rows_out=len(points),
                        error_code=exc.error_code,
                    )
                    break
                failed_pages.append(skip)
                log_event(
                    self.logger,
                    f"page at offset {skip} failed after retries: {exc}",
                    level=logging.WARNING,
                    stage=STAGE,
                    event="PAGE_FAILED",
                    status="error",
                    error_code=exc.error_code,
                )
                skip += self.page_size
                continue

            breaker.record_success()
            pages_fetched += 1
            if not isinstance(payload, list) or not payload:
                break

            for item in payload:
                point = parse_reference_point(item, self.field_candidates)
                if point is None:
                    skipped_items += 1
                    continue
                if point.id in seen_ids:
                    continue
                seen_ids.add(point.id)
                points.append(point)

            skip += self.page_size
            await self._sleep(self.politeness_delay_seconds)

        report = SweepReport(
            points=tuple(points),
            pages_fetched=pages_fetched,
            failed_pages=tuple(failed_pages),
            breaker_tripped=tripped,
            skipped_items=skipped_items,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        log_event(
            self.logger,
            f"sweep finished with {len(points)} points over {pages_fetched} pages",
            level=logging.WARNING if report.is_partial else logging.INFO,
            stage=STAGE,
            event="SWEEP_PARTIAL" if report.is_partial else "SWEEP_COMPLETE",
            status="partial" if report.is_partial else "ok",
            duration_ms=report.duration_ms,
            rows_out=len(points),
        )
        return report

    def _page_params(self, skip: int) -> dict[str, Any]:
        params: dict[str, Any] = {self.skip_param: skip}
        if self.limit_param:
            params[self.limit_param] = self.page_size
        return params

    async def _fetch_page(self, skip: int, breaker: CircuitBreaker) -> Any:
        def _log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            wait = retry_state.next_action.sleep if retry_state.next_action else None
            log_event(
                self.logger,
                f"retrying page at offset {skip} in {wait}s: {exc}",
                level=logging.WARNING,
                stage=STAGE,
                event="PAGE_RETRY",
                status="retry",
                attempt=retry_state.attempt_number,
                error_code=getattr(exc, "error_code", None),
            )

        retrying = self.retry_policy.retrying(breaker=breaker, sleep=self._sleep, before_sleep=_log_retry)
        return await retrying(self.client.get_json, self.base_url, params=self._page_params(skip))
