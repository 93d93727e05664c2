"""In-memory dispatch state store.

This is the only component allowed to merge polled data with optimistic
dispatch effects.

The backend's queue payload carries *requested* quantities but never the
client's dispatch history, so dispatched counts are owned here and carried
forward across polls by emergency identity.  Everything else (presence of a
call, requested quantities, resource availability) is trusted to the server.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from emercery.distance import calculate_distance
from emercery.models.control import ControlStatus
from emercery.models.emergency import EmergencyCall, EmergencyKey, EmergencyType
from emercery.models.location import Location
from emercery.models.resource import EmergencyResource, ResourceAvailability, ResourceKey
from emercery.state.policy import remaining_needed, should_accept_poll

_logger = logging.getLogger(__name__)


class StateSection(StrEnum):
    EMERGENCIES = "emergencies"
    RESOURCES = "resources"


@dataclass(frozen=True, slots=True)
class DispatchOutcome:
    """Records as they look right after an optimistic dispatch."""

    emergency: EmergencyCall | None
    resource: EmergencyResource | None
    quantity: int
    distance: float
    """Total distance credited: distance per unit × quantity."""


@dataclass(frozen=True, slots=True)
class EmergencyStats:
    total_calls: int
    total_requests: dict[EmergencyType, int] = field(default_factory=dict)
    pending_requests: dict[EmergencyType, int] = field(default_factory=dict)
    dispatched_requests: dict[EmergencyType, int] = field(default_factory=dict)


class DispatchStateStore:
    """Reconciled view of emergencies, resources, and dispatch counters.

    ``clock`` stamps optimistic updates; poll results must be stamped with
    the same clock (see :meth:`stamp`) when their request is issued.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._emergencies: dict[EmergencyKey, EmergencyCall] = {}
        self._dispatched: dict[EmergencyKey, dict[EmergencyType, int]] = {}
        self._resources: dict[ResourceKey, EmergencyResource] = {}
        self._locations: list[Location] = []
        self._status: ControlStatus | None = None
        self._selected_emergency: EmergencyKey | None = None
        self._selected_resource: ResourceKey | None = None
        self._last_applied: dict[StateSection, float] = {}
        self._last_optimistic_at: float | None = None
        self.total_dispatched = 0
        self.total_distance = 0.0

    def stamp(self) -> float:
        """Current time on the store's clock, for stamping outgoing polls."""
        return self._clock()

    def reset(self, *, total_dispatched: int = 0, total_distance: float = 0.0) -> None:
        """Forget everything and start counting from the given totals."""
        self._emergencies.clear()
        self._dispatched.clear()
        self._resources.clear()
        self._status = None
        self._selected_emergency = None
        self._selected_resource = None
        self._last_applied.clear()
        self._last_optimistic_at = None
        self.total_dispatched = total_dispatched
        self.total_distance = total_distance

    # ------------------------------------------------------------------
    # Poll results
    # ------------------------------------------------------------------

    def _accept(self, section: StateSection, issued_at: float | None) -> bool:
        if not should_accept_poll(
            issued_at=issued_at,
            last_applied_at=self._last_applied.get(section),
            last_optimistic_at=self._last_optimistic_at,
        ):
            _logger.debug("Discarding stale %s poll issued_at=%s", section, issued_at)
            return False
        if issued_at is not None:
            self._last_applied[section] = issued_at
        return True

    def apply_emergencies(self, calls: Iterable[EmergencyCall], *, issued_at: float | None = None) -> bool:
        """Replace the tracked queue, carrying dispatched counts forward.

        Returns ``False`` when the result was discarded as stale.
        """
        if not self._accept(StateSection.EMERGENCIES, issued_at):
            return False

        emergencies: dict[EmergencyKey, EmergencyCall] = {}
        dispatched: dict[EmergencyKey, dict[EmergencyType, int]] = {}
        for call in calls:
            previous = self._dispatched.get(call.key)
            counts = {t: 0 for t in call.requested_types}
            if previous:
                counts.update(previous)
            emergencies[call.key] = call
            dispatched[call.key] = counts

        self._emergencies = emergencies
        self._dispatched = dispatched

        if self._selected_emergency is not None and self._selected_emergency not in emergencies:
            _logger.debug("Selected emergency %s left the queue; clearing selection", self._selected_emergency)
            self._selected_emergency = None
        return True

    def apply_resources(self, resources: Iterable[EmergencyResource], *, issued_at: float | None = None) -> bool:
        """Authoritatively overwrite the tracked resources."""
        if not self._accept(StateSection.RESOURCES, issued_at):
            return False

        self._resources = {r.key: r for r in resources}
        if self._selected_resource is not None and self._selected_resource not in self._resources:
            self._selected_resource = None
        return True

    def apply_locations(self, locations: Iterable[Location]) -> None:
        self._locations = list(locations)

    def apply_status(self, status: ControlStatus | None) -> None:
        self._status = status

    # ------------------------------------------------------------------
    # Optimistic updates
    # ------------------------------------------------------------------

    def apply_dispatch(
        self,
        resource: EmergencyResource,
        emergency: EmergencyCall,
        quantity: int,
    ) -> DispatchOutcome:
        """Apply the local effects of a dispatch the backend just accepted."""
        self._last_optimistic_at = self._clock()
        resource_type = resource.type

        counts = self._dispatched.get(emergency.key)
        if counts is None:
            _logger.debug("Dispatch target %s is not tracked; counting totals only", emergency.key)
        else:
            counts[resource_type] = counts.get(resource_type, 0) + quantity

        updated_resource: EmergencyResource | None = None
        current = self._resources.get(resource.key)
        if current is not None:
            updated_resource = current.model_copy(update={"quantity": max(0, current.quantity - quantity)})
            self._resources[resource.key] = updated_resource

        per_unit = calculate_distance(resource.latitude, resource.longitude, emergency.latitude, emergency.longitude)
        distance = per_unit * quantity
        self.total_dispatched += quantity
        self.total_distance += distance

        _logger.info(
            "Dispatched %d %s unit(s) from %s, %s to %s, %s (distance=%.4f)",
            quantity,
            resource_type,
            resource.city,
            resource.county,
            emergency.city,
            emergency.county,
            distance,
        )
        return DispatchOutcome(
            emergency=self.get_emergency(emergency.key),
            resource=updated_resource,
            quantity=quantity,
            distance=distance,
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_emergency(self, key: EmergencyKey | None) -> EmergencyCall | None:
        if key is not None and key not in self._emergencies:
            raise KeyError(f"unknown emergency {key}")
        self._selected_emergency = key
        return self.selected_emergency

    def select_resource(self, key: ResourceKey | None) -> EmergencyResource | None:
        if key is not None and key not in self._resources:
            raise KeyError(f"unknown resource {key}")
        self._selected_resource = key
        return self.selected_resource

    @property
    def selected_emergency(self) -> EmergencyCall | None:
        if self._selected_emergency is None:
            return None
        return self.get_emergency(self._selected_emergency)

    @property
    def selected_resource(self) -> EmergencyResource | None:
        if self._selected_resource is None:
            return None
        return self._resources.get(self._selected_resource)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _with_dispatched(self, call: EmergencyCall) -> EmergencyCall:
        counts = copy.deepcopy(self._dispatched.get(call.key, {}))
        return call.model_copy(update={"dispatched": counts})

    def get_emergency(self, key: EmergencyKey) -> EmergencyCall | None:
        call = self._emergencies.get(key)
        if call is None:
            return None
        return self._with_dispatched(call)

    def get_resource(self, key: ResourceKey) -> EmergencyResource | None:
        return self._resources.get(key)

    @property
    def emergencies(self) -> list[EmergencyCall]:
        return [self._with_dispatched(call) for call in self._emergencies.values()]

    @property
    def resources(self) -> list[EmergencyResource]:
        return list(self._resources.values())

    @property
    def locations(self) -> list[Location]:
        return list(self._locations)

    @property
    def status(self) -> ControlStatus | None:
        return self._status

    def remaining_needed(self, key: EmergencyKey, resource_type: EmergencyType) -> int:
        call = self._emergencies.get(key)
        if call is None:
            return 0
        dispatched = self._dispatched.get(key, {}).get(resource_type, 0)
        return remaining_needed(call.requested(resource_type), dispatched)

    def emergency_stats(self) -> EmergencyStats:
        total: dict[EmergencyType, int] = dict.fromkeys(EmergencyType, 0)
        pending: dict[EmergencyType, int] = dict.fromkeys(EmergencyType, 0)
        dispatched: dict[EmergencyType, int] = dict.fromkeys(EmergencyType, 0)
        for key, call in self._emergencies.items():
            counts = self._dispatched.get(key, {})
            for resource_type in call.requested_types:
                requested = call.requested(resource_type)
                sent = counts.get(resource_type, 0)
                total[resource_type] += requested
                dispatched[resource_type] += sent
                pending[resource_type] += remaining_needed(requested, sent)
        return EmergencyStats(
            total_calls=len(self._emergencies),
            total_requests=total,
            pending_requests=pending,
            dispatched_requests=dispatched,
        )

    def resource_availability(self) -> list[ResourceAvailability]:
        available: dict[EmergencyType, int] = dict.fromkeys(EmergencyType, 0)
        locations: dict[EmergencyType, int] = dict.fromkeys(EmergencyType, 0)
        for resource in self._resources.values():
            available[resource.type] += resource.quantity
            locations[resource.type] += 1
        return [
            ResourceAvailability(type=resource_type, available=available[resource_type], locations=locations[resource_type])
            for resource_type in EmergencyType
        ]
