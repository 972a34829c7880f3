"""Retry policy and circuit breaker for upstream page fetches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type

from hazard_feed.common.http import HttpRequestError, UpstreamRateLimited

FORBIDDEN = "forbidden"
TOO_MANY_REQUESTS = "too_many_requests"
TRANSIENT = "transient"


class CircuitBreaker:
    """Counts consecutive failed attempts and opens at a fixed threshold."""

    def __init__(self, threshold: int = 10) -> None:
        self.threshold = threshold
        self.consecutive_failures = 0

    @property
    def is_open(self) -> bool:
        return self.consecutive_failures >= self.threshold

    def record_failure(self) -> None:
        self.consecutive_failures += 1

    def record_success(self) -> None:
        self.consecutive_failures = 0


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    forbidden_base_seconds: float = 3.0
    too_many_requests_step_seconds: float = 10.0
    transient_delay_seconds: float = 2.0

    @classmethod
    def from_config(cls, retry_cfg: dict) -> "RetryPolicy":
        return cls(
            max_attempts=int(retry_cfg["max_attempts"]),
            forbidden_base_seconds=float(retry_cfg["forbidden_base_seconds"]),
            too_many_requests_step_seconds=float(retry_cfg["too_many_requests_step_seconds"]),
            transient_delay_seconds=float(retry_cfg["transient_delay_seconds"]),
        )

    def classify(self, exc: BaseException | None) -> str:
        if isinstance(exc, UpstreamRateLimited):
            return exc.rate_limit_class
        return TRANSIENT

    def backoff_seconds(self, exc: BaseException | None, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        kind = self.classify(exc)
        if kind == FORBIDDEN:
            return self.forbidden_base_seconds * (2 ** (attempt - 1))
        if kind == TOO_MANY_REQUESTS:
            return self.too_many_requests_step_seconds * attempt
        return self.transient_delay_seconds

    def retrying(
        self,
        *,
        breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        before_sleep: Callable[[RetryCallState], None] | None = None,
    ) -> AsyncRetrying:
        def _wait(retry_state: RetryCallState) -> float:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            return self.backoff_seconds(exc, retry_state.attempt_number)

        def _stop(retry_state: RetryCallState) -> bool:
            if breaker is not None and breaker.is_open:
                return True
            return retry_state.attempt_number >= self.max_attempts

        def _after(_retry_state: RetryCallState) -> None:
            if breaker is not None:
                breaker.record_failure()

        kwargs: dict[str, Any] = {
            "stop": _stop,
            "wait": _wait,
            "retry": retry_if_exception_type(HttpRequestError),
            "after": _after,
            "reraise": True,
        }
        if sleep is not None:
            kwargs["sleep"] = sleep
        if before_sleep is not None:
            kwargs["before_sleep"] = before_sleep
        return AsyncRetrying(**kwargs)
