"""Key/value persistence used for the cache and session snapshots.

The dashboard originally leaned on browser local/session storage.  Here the
same role is played by any object implementing :class:`KeyValueStore`; two
implementations ship with the library: a process-local :class:`MemoryStore`
and a :class:`JsonFileStore` that survives restarts.

Values must be JSON-serialisable.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

_logger = logging.getLogger(__name__)

_VALUE = "value"
_EXPIRES_AT = "expiresAt"


class KeyValueStore(Protocol):
    """Structural store interface used by the cache and recovery layers."""

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, *, ttl: float | None = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def expired(self, key: str) -> bool:
        ...


class MemoryStore:
    """Dict-backed store; contents live as long as the process."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, dict[str, Any]] = {}

    def _live(self, key: str) -> dict[str, Any] | None:
        record = self._data.get(key)
        if record is None:
            return None
        expires_at = record.get(_EXPIRES_AT)
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return record

    def get(self, key: str) -> Any | None:
        record = self._live(key)
        if record is None:
            return None
        return copy.deepcopy(record[_VALUE])

    def set(self, key: str, value: Any, *, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = {_VALUE: copy.deepcopy(value), _EXPIRES_AT: expires_at}

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def expired(self, key: str) -> bool:
        """Whether *key* is missing or past its expiry."""
        return self._live(key) is None

    def keys(self) -> list[str]:
        return [key for key in list(self._data) if self._live(key) is not None]


class JsonFileStore(MemoryStore):
    """Store persisted as a single JSON document.

    The file is loaded once on construction and rewritten atomically after
    every mutation.  A missing or unreadable file starts an empty store.
    """

    def __init__(self, path: str | Path, *, clock: Callable[[], float] = time.time) -> None:
        super().__init__(clock=clock)
        self._path = Path(path)
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            _logger.warning("Ignoring corrupt store file %s", self._path)
            return
        if not isinstance(data, dict):
            _logger.warning("Ignoring store file %s: expected an object", self._path)
            return
        for key, record in data.items():
            if isinstance(record, dict) and _VALUE in record:
                self._data[str(key)] = {_VALUE: record[_VALUE], _EXPIRES_AT: record.get(_EXPIRES_AT)}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._data, handle, separators=(",", ":"))
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def set(self, key: str, value: Any, *, ttl: float | None = None) -> None:
        super().set(key, value, ttl=ttl)
        self._flush()

    def delete(self, key: str) -> None:
        if key not in self._data:
            return
        super().delete(key)
        self._flush()
