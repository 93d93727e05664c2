"""High-level async client for the simulation backends."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import Any, TypeVar

import aiohttp

from emercery._api import calls as _calls_api
from emercery._api import control as _control_api
from emercery._api import locations as _locations_api
from emercery._api import resources as _resources_api
from emercery._api import simulate as _simulate_api
from emercery._cache import ResourceCache
from emercery._constants import HEALTH_DEGRADED_THRESHOLD_MS
from emercery._metrics import ErrorTracker, PerformanceMonitor
from emercery._transport import HttpTransport, Transport
from emercery.config import EmerceryConfig
from emercery.exceptions import EmerceryApiError, EmerceryError
from emercery.models.control import ControlStatus, DispatchRequest
from emercery.models.emergency import EmergencyCall, EmergencyType
from emercery.models.health import HealthState, HealthStatus, SystemStatus
from emercery.models.location import Location
from emercery.models.resource import EmergencyResource
from emercery.models.simulation import AutoDispatchStatus, SimulationConfig

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class EmerceryClient:
    """Async client for the main simulation API and the auto-dispatch backend.

    Read methods never raise on API failures: they log, track the error,
    and return the cached value (when a cache is attached) or ``None`` so
    callers can tell a failed read from a genuinely empty one and keep
    their current state.  Write methods propagate :class:`~emercery.exceptions.EmerceryApiError`.

    Usage::

        async with EmerceryClient(config) as client:
            status = await client.get_control_status()
    """

    def __init__(
        self,
        config: EmerceryConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        cache: ResourceCache | None = None,
        monitor: PerformanceMonitor | None = None,
        error_tracker: ErrorTracker | None = None,
    ) -> None:
        self._config = config if config is not None else EmerceryConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport
        self._external_transport = transport is not None
        self._cache = cache
        self._monitor = monitor if monitor is not None else PerformanceMonitor(self._config.perf_buffer_size)
        self._errors = error_tracker if error_tracker is not None else ErrorTracker(self._config.error_buffer_size)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> EmerceryClient:
        if self._external_transport:
            return self
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = HttpTransport(self._config, self._http_session, monitor=self._monitor)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._monitor.flush()
        self._errors.flush()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_transport:
            self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def config(self) -> EmerceryConfig:
        return self._config

    @property
    def cache(self) -> ResourceCache | None:
        return self._cache

    @property
    def monitor(self) -> PerformanceMonitor:
        return self._monitor

    @property
    def errors(self) -> ErrorTracker:
        return self._errors

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise EmerceryError("Client not initialized. Use 'async with EmerceryClient(...) as client:'")
        return self._transport

    async def _read(self, context: str, call: Awaitable[T], fallback: T) -> T:
        """Await a read-path call, degrading to *fallback* on API failure."""
        try:
            return await call
        except EmerceryApiError as exc:
            self._errors.track(exc, context)
            return fallback

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------

    async def get_locations(self) -> list[Location] | None:
        """Static locations; ``None`` when the fetch failed."""
        transport = self._require_transport()
        return await self._read(
            "fetch locations",
            _locations_api.fetch_locations(self._config, transport),
            None,
        )

    def _cached_resources_of(self, resource_type: EmergencyType) -> list[EmergencyResource] | None:
        cached = self._cache.get_resources() if self._cache is not None else None
        if cached is None:
            return None
        return [r for r in cached if r.type == resource_type]

    async def get_resources(self, resource_type: EmergencyType) -> list[EmergencyResource] | None:
        """Available resources of one type.

        On failure the cached records of that type are returned, or ``None``
        when no live cache entry exists.
        """
        transport = self._require_transport()
        try:
            return await _resources_api.fetch_resources(self._config, transport, resource_type)
        except EmerceryApiError as exc:
            self._errors.track(exc, f"fetch {resource_type} resources")
            return self._cached_resources_of(resource_type)

    async def get_all_resources(self) -> list[EmergencyResource] | None:
        """Resources of every configured type, fetched concurrently.

        A failed type is filled from the cache.  If any failed type has no
        cached records to fall back on, the whole result is ``None`` so a
        partial list is never mistaken for the full set.
        """
        transport = self._require_transport()
        types = [EmergencyType(t) for t in self._config.resource_types]
        results = await asyncio.gather(
            *(_resources_api.fetch_resources(self._config, transport, t) for t in types),
            return_exceptions=True,
        )

        resources: list[EmergencyResource] = []
        all_live = True
        complete = True
        for resource_type, result in zip(types, results, strict=True):
            if isinstance(result, EmerceryApiError):
                all_live = False
                self._errors.track(result, f"fetch {resource_type} resources")
                fallback = self._cached_resources_of(resource_type)
                if fallback is None:
                    complete = False
                else:
                    resources.extend(fallback)
            elif isinstance(result, BaseException):
                raise result
            else:
                resources.extend(result)

        if not complete:
            _logger.debug("Resource refresh incomplete and no cache to fill it")
            return None
        if all_live and self._cache is not None:
            self._cache.save_resources(resources)
        return resources

    async def get_call_queue(self) -> list[EmergencyCall] | None:
        """Active emergencies; the cached queue or ``None`` on failure."""
        transport = self._require_transport()
        try:
            calls = await _calls_api.fetch_call_queue(self._config, transport)
        except EmerceryApiError as exc:
            self._errors.track(exc, "fetch call queue")
            return self._cache.get_emergencies() if self._cache is not None else None
        if self._cache is not None:
            self._cache.save_emergencies(calls)
        return calls

    async def get_control_status(self) -> ControlStatus | None:
        transport = self._require_transport()
        return await self._read(
            "fetch control status",
            _control_api.fetch_control_status(self._config, transport),
            None,
        )

    async def get_resource_count_by_city(self, resource_type: EmergencyType, *, county: str, city: str) -> int | None:
        transport = self._require_transport()
        return await self._read(
            f"fetch {resource_type} count for {city}, {county}",
            _resources_api.fetch_resource_count_by_city(self._config, transport, resource_type, county=county, city=city),
            None,
        )

    async def get_auto_dispatch_status(self) -> AutoDispatchStatus | None:
        transport = self._require_transport()
        return await self._read(
            "fetch auto-dispatch status",
            _simulate_api.fetch_simulation_status(self._config, transport),
            None,
        )

    async def _probe(self, *, auto: bool) -> HealthStatus:
        transport = self._require_transport()
        checked = datetime.now(UTC)
        try:
            response = await _simulate_api.probe_health(
                self._config,
                transport,
                auto=auto,
                timeout=self._config.request_timeout,
            )
        except EmerceryApiError as exc:
            return HealthStatus(status=HealthState.UNHEALTHY, response_time=0.0, message=str(exc), last_checked=checked)
        if response.response_time > HEALTH_DEGRADED_THRESHOLD_MS:
            return HealthStatus(
                status=HealthState.DEGRADED,
                response_time=response.response_time,
                message=f"Slow response ({response.response_time:.0f}ms)",
                last_checked=checked,
            )
        return HealthStatus(
            status=HealthState.HEALTHY,
            response_time=response.response_time,
            message="OK",
            last_checked=checked,
        )

    async def check_health(self) -> SystemStatus:
        """Probe both backends concurrently."""
        main, auto = await asyncio.gather(self._probe(auto=False), self._probe(auto=True))
        return SystemStatus(main_api=main, auto_dispatch_api=auto, last_updated=datetime.now(UTC))

    # ------------------------------------------------------------------
    # Write endpoints
    # ------------------------------------------------------------------

    async def reset_control(self, *, seed: str, target_dispatches: int, max_active_calls: int) -> ControlStatus | None:
        """(Re)start the simulation on the main API."""
        transport = self._require_transport()
        if self._cache is not None:
            self._cache.clear()
        return await _control_api.reset_control(
            self._config,
            transport,
            seed=seed,
            target_dispatches=target_dispatches,
            max_active_calls=max_active_calls,
        )

    async def stop_control(self) -> ControlStatus | None:
        transport = self._require_transport()
        return await _control_api.stop_control(self._config, transport)

    async def next_call(self) -> EmergencyCall | None:
        transport = self._require_transport()
        return await _calls_api.fetch_next_call(self._config, transport)

    async def dispatch(
        self,
        resource_type: EmergencyType,
        request: DispatchRequest,
        *,
        timeout: float | None = None,
    ) -> str:
        transport = self._require_transport()
        return await _resources_api.dispatch_resource(self._config, transport, resource_type, request, timeout=timeout)

    async def start_auto_dispatch(self, sim_config: SimulationConfig) -> Any:
        transport = self._require_transport()
        return await _simulate_api.start_simulation(self._config, transport, sim_config)

    async def stop_auto_dispatch(self) -> Any:
        transport = self._require_transport()
        return await _simulate_api.stop_simulation(self._config, transport)
