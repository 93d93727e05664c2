"""Polling orchestrator: drives the client on timers and owns dashboard state."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from emercery.client import EmerceryClient
from emercery.config import AUTO_FETCH_MAX_INTERVAL, AUTO_FETCH_MIN_INTERVAL
from emercery.exceptions import EmerceryError, EmerceryValidationError
from emercery.models.control import ControlStatus, DispatchRequest
from emercery.models.emergency import EmergencyCall, EmergencyKey
from emercery.models.location import Location
from emercery.models.resource import EmergencyResource, ResourceKey
from emercery.models.simulation import SimulationConfig
from emercery.polling import Poller, cancel_and_wait
from emercery.recovery import ResumeDecision, SessionRecoveryManager
from emercery.session import SessionSnapshot
from emercery.state import DispatchOutcome, DispatchStateStore

_logger = logging.getLogger(__name__)


def format_elapsed(seconds: float) -> str:
    """``HH:MM:SS`` for a non-negative number of seconds."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass(frozen=True, slots=True)
class DashboardState:
    """Immutable view handed to listeners after every state change."""

    status: ControlStatus | None = None
    emergencies: list[EmergencyCall] = field(default_factory=list)
    resources: list[EmergencyResource] = field(default_factory=list)
    locations: list[Location] = field(default_factory=list)
    selected_emergency: EmergencyCall | None = None
    selected_resource: EmergencyResource | None = None
    total_dispatched: int = 0
    total_distance: float = 0.0
    elapsed: str = "00:00:00"
    running: bool = False
    auto_dispatch: bool = False
    auto_fetch_enabled: bool = False
    auto_fetch_interval: float = 0.0


DashboardListener = Callable[[DashboardState], None]


class PollingOrchestrator:
    """Owns the four dashboard timers and sequences them around a simulation.

    Pollers
    -------
    data
        Locations, resources, queue and status.  Manual mode only.
    status
        Control status.  Seeing ``Running`` turn into anything else stops
        every network poller, clears the displayed status and drops the
        session snapshot.
    auto_fetch
        Pulls ``/calls/next`` while active calls are below the maximum.
        Manual mode only, and only while enabled.
    elapsed
        Refreshes the ``HH:MM:SS`` display from the session start time.

    Failing read calls degrade inside :class:`EmerceryClient`; write calls
    (start, stop, dispatch) raise to the caller.
    """

    def __init__(
        self,
        client: EmerceryClient,
        *,
        store: DispatchStateStore | None = None,
        recovery: SessionRecoveryManager | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._config = client.config
        self._store = store if store is not None else DispatchStateStore()
        self._recovery = (
            recovery
            if recovery is not None
            else SessionRecoveryManager(window=self._config.session_resume_window, clock=clock)
        )
        self._clock = clock

        self._data = Poller("data", self._config.data_poll_interval, self.refresh_data)
        self._status = Poller("status", self._config.status_poll_interval, self.refresh_status)
        self._auto_fetch = Poller("auto_fetch", self._config.auto_fetch_interval, self._auto_fetch_tick)
        self._elapsed_ticker = Poller("elapsed", self._config.elapsed_tick_interval, self._elapsed_tick)
        self._auto_fetch_enabled = self._config.auto_fetch_enabled

        self._listeners: list[DashboardListener] = []
        self._running = False
        self._was_running = False
        self._auto_mode = False
        self._max_active_calls = 0
        self._start_time: float | None = None
        self._elapsed = format_elapsed(0)
        self._closed = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def store(self) -> DispatchStateStore:
        return self._store

    @property
    def recovery(self) -> SessionRecoveryManager:
        return self._recovery

    @property
    def pollers(self) -> dict[str, Poller]:
        return {
            "data": self._data,
            "status": self._status,
            "auto_fetch": self._auto_fetch,
            "elapsed": self._elapsed_ticker,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def state(self) -> DashboardState:
        store = self._store
        return DashboardState(
            status=store.status,
            emergencies=store.emergencies,
            resources=store.resources,
            locations=store.locations,
            selected_emergency=store.selected_emergency,
            selected_resource=store.selected_resource,
            total_dispatched=store.total_dispatched,
            total_distance=store.total_distance,
            elapsed=self._elapsed,
            running=self._running,
            auto_dispatch=self._auto_mode,
            auto_fetch_enabled=self._auto_fetch_enabled,
            auto_fetch_interval=self._auto_fetch.interval,
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: DashboardListener) -> Callable[[], None]:
        """Register *listener*; the returned callable unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _logger.debug("Dashboard listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Simulation lifecycle
    # ------------------------------------------------------------------

    def _require_open(self) -> None:
        if self._closed:
            raise EmerceryError("Orchestrator has been shut down")

    def _stop_pollers(self) -> None:
        for poller in self.pollers.values():
            poller.stop()

    async def start_simulation(
        self,
        seed: str,
        target_dispatches: int,
        max_active_calls: int,
        *,
        auto: bool = False,
    ) -> ControlStatus | None:
        """(Re)start a simulation and attach the pollers for its mode."""
        return await self._start(
            seed=seed,
            target_dispatches=target_dispatches,
            max_active_calls=max_active_calls,
            auto=auto,
        )

    async def resume(self, snapshot: SessionSnapshot) -> ControlStatus | None:
        """Restart from *snapshot*, carrying its counters and start time over."""
        _logger.info(
            "Resuming session seed=%s dispatched=%d distance=%.4f",
            snapshot.seed,
            snapshot.dispatched_count,
            snapshot.total_distance,
        )
        return await self._start(
            seed=snapshot.seed,
            target_dispatches=snapshot.target_dispatches,
            max_active_calls=snapshot.max_active_calls,
            auto=snapshot.auto_dispatch,
            start_time=snapshot.start_time,
            dispatched_count=snapshot.dispatched_count,
            total_distance=snapshot.total_distance,
        )

    async def recover(self, decide: ResumeDecision, *, timeout: float | None = None) -> ControlStatus | None:
        """Offer the persisted session for resume and resume it if accepted.

        Returns ``None`` when nothing was resumed.
        """
        prompt_timeout = self._config.resume_prompt_timeout if timeout is None else timeout
        snapshot = await self._recovery.offer_resume(decide, timeout=prompt_timeout)
        if snapshot is None:
            return None
        return await self.resume(snapshot)

    async def _start(
        self,
        *,
        seed: str,
        target_dispatches: int,
        max_active_calls: int,
        auto: bool,
        start_time: float | None = None,
        dispatched_count: int = 0,
        total_distance: float = 0.0,
    ) -> ControlStatus | None:
        self._require_open()
        if target_dispatches <= 0:
            raise EmerceryValidationError("Target dispatches must be positive", field="target_dispatches")
        if max_active_calls <= 0:
            raise EmerceryValidationError("Max active calls must be positive", field="max_active_calls")
        self._stop_pollers()
        self._running = False
        self._was_running = False

        if auto:
            sim_config = SimulationConfig(
                api_url=self._config.api_base_url,
                seed=seed,
                target_dispatches=target_dispatches,
                max_active_calls=max_active_calls,
                poll_interval=self._config.auto_poll_interval,
                status_interval=self._config.auto_status_interval,
            )
            await self._client.start_auto_dispatch(sim_config)
            status = await self._client.get_control_status()
        else:
            status = await self._client.reset_control(
                seed=seed,
                target_dispatches=target_dispatches,
                max_active_calls=max_active_calls,
            )
            if status is None:
                status = await self._client.get_control_status()

        started_at = self._clock() if start_time is None else start_time
        self._store.reset(total_dispatched=dispatched_count, total_distance=total_distance)
        self._store.apply_status(status)
        self._recovery.start(
            seed=seed,
            target_dispatches=target_dispatches,
            max_active_calls=max_active_calls,
            auto_dispatch=auto,
            start_time=started_at,
            dispatched_count=dispatched_count,
            total_distance=total_distance,
        )
        self._running = True
        self._was_running = status is not None and status.is_running
        self._auto_mode = auto
        self._max_active_calls = max_active_calls
        self._start_time = started_at
        self._elapsed = format_elapsed(self._clock() - started_at)
        _logger.info(
            "Simulation started seed=%s target=%d max_active=%d mode=%s",
            seed,
            target_dispatches,
            max_active_calls,
            "auto" if auto else "manual",
        )

        if not auto:
            await self.refresh_data()
            self._data.start()
            if self._auto_fetch_enabled:
                self._auto_fetch.start()
        self._status.start()
        self._elapsed_ticker.start()
        self._notify()
        return status

    async def stop_simulation(self) -> ControlStatus | None:
        """Stop the running simulation on its backend and detach the pollers."""
        self._require_open()
        if self._auto_mode:
            await self._client.stop_auto_dispatch()
            status = await self._client.get_control_status()
        else:
            status = await self._client.stop_control()
        self._end_session(status)
        _logger.info("Simulation stopped")
        return status

    def _end_session(self, status: ControlStatus | None) -> None:
        self._data.stop()
        self._auto_fetch.stop()
        self._status.stop()
        self._elapsed_ticker.stop()
        self._store.apply_status(status)
        self._recovery.clear()
        self._running = False
        self._was_running = False
        self._notify()

    async def shutdown(self) -> None:
        """Stop every poller and wait for them to unwind; idempotent."""
        self._closed = True
        tasks = [p.task for p in self.pollers.values() if p.task is not None]
        self._stop_pollers()
        await cancel_and_wait(tasks)
        self._listeners.clear()
        self._running = False

    # ------------------------------------------------------------------
    # Poll ticks
    # ------------------------------------------------------------------

    async def refresh_data(self) -> None:
        """Fetch locations, resources, queue and status in one round."""
        issued_at = self._store.stamp()
        locations, resources, calls, status = await asyncio.gather(
            self._client.get_locations(),
            self._client.get_all_resources(),
            self._client.get_call_queue(),
            self._client.get_control_status(),
        )
        # A section whose fetch failed keeps what it already has.
        if locations:
            self._store.apply_locations(locations)
        if resources is not None:
            self._store.apply_resources(resources, issued_at=issued_at)
        if calls is not None:
            self._store.apply_emergencies(calls, issued_at=issued_at)
        if status is not None:
            self._store.apply_status(status)
        self._notify()

    async def refresh_status(self) -> None:
        """Status tick; the only place a Running-to-ended transition is acted on."""
        status = await self._client.get_control_status()
        if status is None:
            return
        if status.is_running:
            self._was_running = True
            self._store.apply_status(status)
            self._notify()
            return
        if self._was_running:
            _logger.info("Simulation left Running (now %s); stopping pollers", status.status)
            self._end_session(None)
            return
        self._store.apply_status(status)
        self._notify()

    async def _auto_fetch_tick(self) -> None:
        status = await self._client.get_control_status()
        if status is None:
            return
        if not status.is_running:
            _logger.debug("Auto-fetch stopping: status is %s", status.status)
            self._auto_fetch.stop()
            return
        limit = status.max_active_calls or self._max_active_calls
        if status.request_count >= limit:
            _logger.debug("Auto-fetch skipped: %d/%d active calls", status.request_count, limit)
            return
        await self._client.next_call()
        issued_at = self._store.stamp()
        calls = await self._client.get_call_queue()
        if calls is None:
            return
        self._store.apply_emergencies(calls, issued_at=issued_at)
        self._notify()

    def _elapsed_tick(self) -> None:
        if self._start_time is None:
            return
        self._elapsed = format_elapsed(self._clock() - self._start_time)
        self._notify()

    def set_auto_fetch(self, enabled: bool, interval: float | None = None) -> None:
        """Toggle auto-fetch and optionally change its interval (1 to 30 s)."""
        if interval is not None:
            if not AUTO_FETCH_MIN_INTERVAL <= interval <= AUTO_FETCH_MAX_INTERVAL:
                raise EmerceryValidationError(
                    f"Auto-fetch interval must be between {AUTO_FETCH_MIN_INTERVAL:g} and "
                    f"{AUTO_FETCH_MAX_INTERVAL:g} seconds",
                    field="interval",
                )
            self._auto_fetch.interval = interval
        self._auto_fetch_enabled = enabled
        if enabled and self._running and not self._auto_mode and not self._closed:
            self._auto_fetch.start()
        else:
            self._auto_fetch.stop()
        self._notify()

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def select_emergency(self, key: EmergencyKey | None) -> EmergencyCall | None:
        selected = self._store.select_emergency(key)
        self._notify()
        return selected

    def select_resource(self, key: ResourceKey | None) -> EmergencyResource | None:
        selected = self._store.select_resource(key)
        self._notify()
        return selected

    def _validate_dispatch(self, resource: EmergencyResource, emergency: EmergencyCall, quantity: int) -> None:
        if quantity <= 0:
            raise EmerceryValidationError("Dispatch quantity must be positive", field="quantity")
        current = self._store.get_resource(resource.key) or resource
        if quantity > current.quantity:
            raise EmerceryValidationError(
                f"Only {current.quantity} {resource.type} unit(s) available in {resource.city}, {resource.county}",
                field="quantity",
            )
        if not emergency.needs(resource.type):
            raise EmerceryValidationError(
                f"Emergency in {emergency.city}, {emergency.county} did not request {resource.type}",
                field="type",
            )
        if self._store.get_emergency(emergency.key) is not None:
            remaining = self._store.remaining_needed(emergency.key, resource.type)
        else:
            remaining = emergency.requested(resource.type) - emergency.dispatched.get(resource.type, 0)
        if remaining <= 0:
            raise EmerceryValidationError(
                f"Emergency in {emergency.city}, {emergency.county} needs no more {resource.type} units",
                field="quantity",
            )

    async def dispatch(
        self,
        resource: EmergencyResource,
        emergency: EmergencyCall,
        quantity: int,
        *,
        timeout: float | None = None,
    ) -> DispatchOutcome:
        """Send units from *resource* to *emergency*.

        Local state is only touched once the backend accepted the dispatch;
        any failure propagates and leaves everything as it was.
        """
        self._validate_dispatch(resource, emergency, quantity)
        request = DispatchRequest(
            source_county=resource.county,
            source_city=resource.city,
            target_county=emergency.county,
            target_city=emergency.city,
            quantity=quantity,
        )
        await self._client.dispatch(resource.type, request, timeout=timeout)

        outcome = self._store.apply_dispatch(resource, emergency, quantity)
        cache = self._client.cache
        if cache is not None:
            if outcome.resource is not None:
                cache.update_resource(outcome.resource)
            if outcome.emergency is not None:
                cache.update_emergency(outcome.emergency)
        self._recovery.record_progress(
            dispatched_count=self._store.total_dispatched,
            total_distance=self._store.total_distance,
        )
        self._notify()
        return outcome
