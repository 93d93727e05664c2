"""Bounded buffers for API performance samples, tracked errors and log records.

Each buffer lives in memory and can optionally be persisted to a
:class:`~emercery.storage.KeyValueStore` with ``flush()``; a buffer built
with a store starts from whatever was last flushed there.
"""

from __future__ import annotations

import dataclasses
import enum
import json
import logging
import re
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

from emercery._constants import LOG_BUFFER_KEY, PERF_SAMPLES_KEY, TRACKED_ERRORS_KEY
from emercery.exceptions import (
    EmerceryApiError,
    EmerceryClientError,
    EmerceryNetworkError,
    EmerceryServerError,
    EmerceryTimeoutError,
    EmerceryValidationError,
)
from emercery.storage import KeyValueStore

_logger = logging.getLogger(__name__)

_ENDPOINT_RE = re.compile(r"^/([^/]+)/([^/?]+)")


def _load_entries(store: KeyValueStore | None, key: str) -> list[dict[str, Any]]:
    if store is None:
        return []
    raw = store.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        _logger.warning("Discarding unreadable buffer %s", key)
        store.delete(key)
        return []
    return [entry for entry in raw if isinstance(entry, dict)]


@dataclass(frozen=True, slots=True)
class PerformanceSample:
    """One HTTP attempt that produced a response."""

    url: str
    method: str
    response_time: float
    """Milliseconds from send to fully-read body."""
    status: int
    recorded_at: float = field(default_factory=time.time)

    @property
    def ok(self) -> bool:
        return self.status < 400


@dataclass(frozen=True, slots=True)
class EndpointStats:
    avg: float
    min: float
    max: float
    count: int
    failures: int


def endpoint_of(url: str) -> str:
    """Group a URL by its first two path segments (``/medical/dispatch``)."""
    path = urlsplit(url).path or url
    match = _ENDPOINT_RE.match(path)
    if match:
        return f"/{match.group(1)}/{match.group(2)}"
    return path


class PerformanceMonitor:
    """Ring buffer of :class:`PerformanceSample` with simple aggregations."""

    def __init__(
        self,
        maxlen: int = 1000,
        *,
        store: KeyValueStore | None = None,
        key: str = PERF_SAMPLES_KEY,
    ) -> None:
        self._samples: deque[PerformanceSample] = deque(maxlen=maxlen)
        self._store = store
        self._key = key
        for entry in _load_entries(store, key):
            try:
                self._samples.append(PerformanceSample(**entry))
            except TypeError:
                _logger.debug("Skipping unreadable performance sample %r", entry)

    def record(self, sample: PerformanceSample) -> None:
        self._samples.append(sample)

    def samples(self) -> list[PerformanceSample]:
        return list(self._samples)

    def clear(self) -> None:
        self._samples.clear()
        if self._store is not None:
            self._store.delete(self._key)

    def flush(self) -> None:
        """Persist the current samples; no-op without a store."""
        if self._store is None:
            return
        self._store.set(self._key, [dataclasses.asdict(s) for s in self._samples])

    def __len__(self) -> int:
        return len(self._samples)

    def success_rate(self) -> float:
        """Percentage of sampled responses below 400; 100 with no samples."""
        if not self._samples:
            return 100.0
        ok = sum(1 for s in self._samples if s.ok)
        return ok / len(self._samples) * 100.0

    def average_response_time(self) -> float:
        if not self._samples:
            return 0.0
        return sum(s.response_time for s in self._samples) / len(self._samples)

    def by_endpoint(self) -> dict[str, EndpointStats]:
        grouped: dict[str, list[PerformanceSample]] = {}
        for sample in self._samples:
            grouped.setdefault(endpoint_of(sample.url), []).append(sample)

        stats: dict[str, EndpointStats] = {}
        for endpoint, samples in grouped.items():
            times = [s.response_time for s in samples]
            stats[endpoint] = EndpointStats(
                avg=sum(times) / len(times),
                min=min(times),
                max=max(times),
                count=len(times),
                failures=sum(1 for s in samples if not s.ok),
            )
        return stats


class ErrorCategory(enum.StrEnum):
    NETWORK = "network"
    SERVER = "server"
    TIMEOUT = "timeout"
    AUTH = "auth"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


def categorize(exc: BaseException) -> ErrorCategory:
    """Map an exception onto the coarse categories shown to operators."""
    if isinstance(exc, EmerceryTimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(exc, EmerceryNetworkError):
        return ErrorCategory.NETWORK
    if isinstance(exc, EmerceryServerError):
        return ErrorCategory.SERVER
    if isinstance(exc, EmerceryClientError):
        if exc.status_code in (401, 403):
            return ErrorCategory.AUTH
        return ErrorCategory.VALIDATION
    if isinstance(exc, EmerceryValidationError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


@dataclass(frozen=True, slots=True)
class TrackedError:
    context: str
    category: ErrorCategory
    message: str
    url: str = ""
    method: str = ""
    recorded_at: float = field(default_factory=time.time)


class ErrorTracker:
    """Ring buffer of recent failures, for debug views and export."""

    def __init__(
        self,
        maxlen: int = 100,
        *,
        store: KeyValueStore | None = None,
        key: str = TRACKED_ERRORS_KEY,
    ) -> None:
        self._errors: deque[TrackedError] = deque(maxlen=maxlen)
        self._store = store
        self._key = key
        for entry in _load_entries(store, key):
            try:
                self._errors.append(TrackedError(**{**entry, "category": ErrorCategory(entry.get("category"))}))
            except (TypeError, ValueError):
                _logger.debug("Skipping unreadable tracked error %r", entry)

    def track(self, exc: BaseException, context: str) -> ErrorCategory:
        category = categorize(exc)
        url = exc.url if isinstance(exc, EmerceryApiError) else ""
        method = exc.method if isinstance(exc, EmerceryApiError) else ""
        self._errors.append(TrackedError(context=context, category=category, message=str(exc), url=url, method=method))
        _logger.warning("API error [%s]: %s: %s", category, context, exc)
        return category

    def errors(self) -> list[TrackedError]:
        return list(self._errors)

    def clear(self) -> None:
        self._errors.clear()
        if self._store is not None:
            self._store.delete(self._key)

    def flush(self) -> None:
        """Persist the tracked errors; no-op without a store."""
        if self._store is None:
            return
        self._store.set(self._key, [dataclasses.asdict(e) for e in self._errors])


class LogBuffer(logging.Handler):
    """Logging handler that keeps the most recent records as plain dicts.

    Attach it to the ``emercery`` logger (or the root logger) to get an
    exportable history of what the client did.  With a *store* the buffer
    is restored on construction and written back by :meth:`flush`, which
    :func:`logging.shutdown` also calls at interpreter exit.

    Parameters
    ----------
    capacity : int
        Maximum number of records kept; older ones are dropped.
    store : KeyValueStore or None
        Optional persistence target.
    key : str
        Store key the records are kept under.
    level : int
        Minimum level handled.
    """

    def __init__(
        self,
        capacity: int = 1000,
        *,
        store: KeyValueStore | None = None,
        key: str = LOG_BUFFER_KEY,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        self._entries: deque[dict[str, Any]] = deque(_load_entries(store, key), maxlen=capacity)
        self._store = store
        self._key = key

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, Any] = {
                "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
                "level": record.levelname.lower(),
                "logger": record.name,
                "message": record.getMessage(),
            }
            if record.exc_info:
                entry["exc_info"] = logging.Formatter().formatException(record.exc_info)
            self._entries.append(entry)
        except Exception:
            self.handleError(record)

    def records(self) -> list[dict[str, Any]]:
        return list(self._entries)

    def export(self) -> str:
        """The buffered records as indented JSON."""
        return json.dumps(self.records(), indent=2)

    def clear(self) -> None:
        self.acquire()
        try:
            self._entries.clear()
            if self._store is not None:
                self._store.delete(self._key)
        finally:
            self.release()

    def flush(self) -> None:
        if self._store is None:
            return
        self.acquire()
        try:
            self._store.set(self._key, list(self._entries))
        finally:
            self.release()
