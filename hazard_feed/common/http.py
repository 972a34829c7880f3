"""Async HTTP client with timeouts and upstream failure typing."""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import Any

import httpx

from hazard_feed.common.constants import USER_AGENT
from hazard_feed.common.errors import StageError

RATE_LIMIT_CLASSES = {403: "forbidden", 429: "too_many_requests"}


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 30.0
    read: float = 30.0

    def to_httpx(self) -> httpx.Timeout:
        return httpx.Timeout(self.read, connect=self.connect)


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableHttpError(HttpRequestError):
    pass


class UpstreamTimeout(RetryableHttpError):
    error_code = "UPSTREAM_TIMEOUT"


class UpstreamRateLimited(RetryableHttpError):
    error_code = "RATE_LIMITED"

    def __init__(self, message: str, *, status_code: int, rate_limit_class: str) -> None:
        super().__init__(message, status_code=status_code)
        self.rate_limit_class = rate_limit_class


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.session = httpx.AsyncClient(
            timeout=self.timeout.to_httpx(),
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        await self.session.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status in RATE_LIMIT_CLASSES:
            raise UpstreamRateLimited(
                f"Rate limited by upstream: {status}",
                status_code=status,
                rate_limit_class=RATE_LIMIT_CLASSES[status],
            )
        if status >= 500:
            raise RetryableHttpError(f"Retryable HTTP status: {status}", status_code=status)
        if status >= 400:
            raise HttpRequestError(f"HTTP status: {status}", status_code=status)

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        req_timeout = (timeout or self.timeout).to_httpx()
        try:
            response = await self.session.get(url, params=params, headers=headers, timeout=req_timeout)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"Timed out calling {url}") from exc
        except httpx.TransportError as exc:
            raise RetryableHttpError(f"Transport failure calling {url}: {exc}") from exc
        except httpx.RequestError as exc:
            # Undecodable bodies and redirect loops.
            raise RetryableHttpError(f"Request failure calling {url}: {exc}") from exc

        self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Invalid JSON payload from {url}") from exc
