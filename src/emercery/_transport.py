"""HTTP request engine with deadlines, retry/backoff and error classification."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from emercery._constants import MAX_RETRY_DELAY
from emercery._metrics import PerformanceMonitor, PerformanceSample
from emercery.config import EmerceryConfig
from emercery.exceptions import (
    EmerceryApiError,
    EmerceryClientError,
    EmerceryNetworkError,
    EmerceryServerError,
    EmerceryTimeoutError,
)

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApiResponse:
    """Successful outcome of one logical request."""

    data: Any
    status: int
    response_time: float
    """Milliseconds spent on the attempt that succeeded."""
    retries: int
    url: str
    method: str


@dataclass(slots=True)
class RetryContext:
    """Per-request retry bookkeeping."""

    attempt: int = 0
    last_error: EmerceryApiError | None = None
    delay: float = 0.0


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles/mocks while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
    ) -> ApiResponse:
        ...


def backoff_delay(attempt: int, base_delay: float, max_delay: float = MAX_RETRY_DELAY) -> float:
    """Seconds to wait after failed attempt number *attempt* (1-based)."""
    return min(base_delay * 2 ** (attempt - 1), max_delay)


def extract_error_message(text: str, status: int, reason: str | None = None) -> str:
    """Pick the most useful error text from a failed response.

    Order: JSON ``detail`` → JSON ``message`` → raw body → status line.
    """
    stripped = text.strip()
    if stripped:
        try:
            body = json.loads(stripped)
        except json.JSONDecodeError:
            body = None
        if isinstance(body, dict):
            for key in ("detail", "message"):
                value = body.get(key)
                if value:
                    return value if isinstance(value, str) else json.dumps(value)
        return stripped[:500]
    return f"HTTP {status} {reason or ''}".strip()


def _decode_body(text: str) -> Any:
    """JSON when the body parses as JSON, the plain text otherwise."""
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class HttpTransport:
    """Issues logical requests against the simulation backends.

    One logical request is up to ``max_attempts`` HTTP attempts.  Timeouts,
    transport failures and 5xx answers are retried with exponential backoff;
    4xx answers fail immediately.
    """

    def __init__(
        self,
        config: EmerceryConfig,
        http_session: aiohttp.ClientSession,
        *,
        monitor: PerformanceMonitor | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._http = http_session
        self._monitor = monitor if monitor is not None else PerformanceMonitor(config.perf_buffer_size)
        self._sleep = sleep

    @property
    def monitor(self) -> PerformanceMonitor:
        return self._monitor

    async def request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
    ) -> ApiResponse:
        method = method.upper()
        deadline = timeout if timeout is not None else self._config.request_timeout
        attempts = max_attempts if max_attempts is not None else self._config.max_attempts
        ctx = RetryContext()

        while True:
            ctx.attempt += 1
            started = time.monotonic()
            failure: EmerceryApiError
            try:
                async with self._http.request(
                    method,
                    url,
                    json=json_body,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=deadline),
                ) as resp:
                    text = await resp.text()
                    status = resp.status
                    reason = resp.reason
            except asyncio.TimeoutError as exc:
                elapsed = (time.monotonic() - started) * 1000
                failure = EmerceryTimeoutError(
                    f"{method} {url} timed out after {deadline:.1f}s",
                    url=url,
                    method=method,
                    retries=ctx.attempt - 1,
                )
                failure.__cause__ = exc
            except aiohttp.ClientError as exc:
                elapsed = (time.monotonic() - started) * 1000
                failure = EmerceryNetworkError(
                    f"{method} {url} failed: {exc}",
                    url=url,
                    method=method,
                    retries=ctx.attempt - 1,
                )
                failure.__cause__ = exc
            else:
                elapsed = (time.monotonic() - started) * 1000
                self._monitor.record(PerformanceSample(url=url, method=method, response_time=elapsed, status=status))

                if status < 400:
                    _logger.debug(
                        "API response method=%s url=%s status=%d elapsed=%.1fms attempt=%d",
                        method,
                        url,
                        status,
                        elapsed,
                        ctx.attempt,
                    )
                    return ApiResponse(
                        data=_decode_body(text),
                        status=status,
                        response_time=elapsed,
                        retries=ctx.attempt - 1,
                        url=url,
                        method=method,
                    )

                message = extract_error_message(text, status, reason)
                error_cls = EmerceryServerError if status >= 500 else EmerceryClientError
                failure = error_cls(
                    message,
                    url=url,
                    method=method,
                    retries=ctx.attempt - 1,
                    status_code=status,
                )

            ctx.last_error = failure
            will_retry = failure.retryable and ctx.attempt < attempts
            _logger.warning(
                "API request failed method=%s url=%s status=%s elapsed=%.1fms attempt=%d/%d will_retry=%s: %s",
                method,
                url,
                failure.status_code,
                elapsed,
                ctx.attempt,
                attempts,
                will_retry,
                failure.message,
            )
            if not will_retry:
                raise failure

            ctx.delay = backoff_delay(ctx.attempt, self._config.retry_base_delay)
            await self._sleep(ctx.delay)
