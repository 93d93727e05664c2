"""TTL-bounded cache of the last known resources and emergencies.

The cache is a continuity layer: read-path callers fall back to it when a
live fetch fails.  Live data always replaces it on a successful fetch.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable
from typing import Any

from pydantic import ValidationError

from emercery._constants import CACHE_KEY_EMERGENCIES, CACHE_KEY_RESOURCES, CACHE_TTL_SECONDS
from emercery.models.emergency import EmergencyCall
from emercery.models.resource import EmergencyResource
from emercery.storage import KeyValueStore, MemoryStore

_logger = logging.getLogger(__name__)

_PAYLOAD = "payload"
_SAVED_AT = "savedAt"


def _resource_identity(record: dict[str, Any]) -> Hashable:
    return (record.get("city"), record.get("county"), record.get("type"))


def _emergency_identity(record: dict[str, Any]) -> Hashable:
    return (record.get("city"), record.get("county"))


class ResourceCache:
    """Cache entries are ``{payload, savedAt}`` records in a :class:`KeyValueStore`.

    An entry whose age has reached ``ttl`` is indistinguishable from a
    missing one.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store: KeyValueStore = store if store is not None else MemoryStore(clock=clock)
        self._ttl = ttl
        self._clock = clock
        self._keys: set[str] = {CACHE_KEY_RESOURCES, CACHE_KEY_EMERGENCIES}

    @property
    def ttl(self) -> float:
        return self._ttl

    # ------------------------------------------------------------------
    # Generic entries
    # ------------------------------------------------------------------

    def save(self, key: str, payload: Any) -> None:
        self._keys.add(key)
        self._store.set(key, {_PAYLOAD: payload, _SAVED_AT: self._clock()})

    def _entry(self, key: str) -> dict[str, Any] | None:
        entry = self._store.get(key)
        if not isinstance(entry, dict) or _PAYLOAD not in entry:
            return None
        saved_at = entry.get(_SAVED_AT)
        if not isinstance(saved_at, (int, float)):
            return None
        age = self._clock() - saved_at
        if age >= self._ttl:
            _logger.debug("Cache entry %s expired (age=%.1fs)", key, age)
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """Return the cached payload, or ``None`` if absent or expired."""
        entry = self._entry(key)
        if entry is None:
            return None
        return entry[_PAYLOAD]

    def age(self, key: str) -> float | None:
        entry = self._entry(key)
        if entry is None:
            return None
        return self._clock() - float(entry[_SAVED_AT])

    def update_one(
        self,
        key: str,
        record: dict[str, Any],
        identity: Callable[[dict[str, Any]], Hashable],
    ) -> bool:
        """Replace the single cached record sharing *record*'s identity.

        The entry keeps its original write time, so optimistic updates never
        extend the life of otherwise stale data.  Returns ``True`` when a
        record was replaced.
        """
        entry = self._entry(key)
        if entry is None:
            return False
        records = entry[_PAYLOAD]
        if not isinstance(records, list):
            return False
        wanted = identity(record)
        for index, existing in enumerate(records):
            if isinstance(existing, dict) and identity(existing) == wanted:
                records[index] = record
                self._store.set(key, {_PAYLOAD: records, _SAVED_AT: entry[_SAVED_AT]})
                _logger.debug("Cache record updated key=%s identity=%s", key, wanted)
                return True
        return False

    def clear(self) -> None:
        for key in self._keys:
            self._store.delete(key)
        _logger.debug("Cache cleared")

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    def save_resources(self, resources: list[EmergencyResource]) -> None:
        self.save(CACHE_KEY_RESOURCES, [r.to_payload() for r in resources])
        _logger.debug("Resources cached count=%d", len(resources))

    def get_resources(self) -> list[EmergencyResource] | None:
        payload = self.get(CACHE_KEY_RESOURCES)
        if not isinstance(payload, list):
            return None
        try:
            return [EmergencyResource.model_validate(item) for item in payload]
        except ValidationError:
            _logger.warning("Discarding unreadable cached resources", exc_info=True)
            return None

    def update_resource(self, resource: EmergencyResource) -> bool:
        return self.update_one(CACHE_KEY_RESOURCES, resource.to_payload(), _resource_identity)

    def save_emergencies(self, emergencies: list[EmergencyCall]) -> None:
        self.save(CACHE_KEY_EMERGENCIES, [e.to_payload() for e in emergencies])
        _logger.debug("Emergencies cached count=%d", len(emergencies))

    def get_emergencies(self) -> list[EmergencyCall] | None:
        payload = self.get(CACHE_KEY_EMERGENCIES)
        if not isinstance(payload, list):
            return None
        try:
            return [EmergencyCall.model_validate(item) for item in payload]
        except ValidationError:
            _logger.warning("Discarding unreadable cached emergencies", exc_info=True)
            return None

    def update_emergency(self, emergency: EmergencyCall) -> bool:
        return self.update_one(CACHE_KEY_EMERGENCIES, emergency.to_payload(), _emergency_identity)
