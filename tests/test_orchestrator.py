from __future__ import annotations

import asyncio

import pytest
from conftest import FakeSimulationBackend, FakeTransport, make_call, wait_until

from emercery._cache import ResourceCache
from emercery.client import EmerceryClient
from emercery.config import EmerceryConfig
from emercery.exceptions import EmerceryError, EmerceryTimeoutError, EmerceryValidationError
from emercery.models.emergency import EmergencyType
from emercery.orchestrator import DashboardState, PollingOrchestrator, format_elapsed
from emercery.recovery import SessionRecoveryManager
from emercery.session import SessionSnapshot
from emercery.storage import MemoryStore

SPRINGFIELD = ("Springfield", "Greene")
MEDICAL_SOURCE = ("Shelbyville", "Shelby", EmergencyType.MEDICAL)


@pytest.mark.asyncio
async def test_scenario_reset_then_dispatch(
    backend: FakeSimulationBackend, transport: FakeTransport, fast_config: EmerceryConfig
) -> None:
    cache = ResourceCache()
    async with EmerceryClient(fast_config, transport=transport, cache=cache) as client:
        orchestrator = PollingOrchestrator(client)
        status = await orchestrator.start_simulation("default", 10, 5)
        assert status is not None
        assert status.is_running
        assert orchestrator.store.status is not None

        resource = orchestrator.store.get_resource(MEDICAL_SOURCE)
        emergency = orchestrator.store.get_emergency(SPRINGFIELD)
        assert resource is not None and resource.quantity == 10
        assert emergency is not None and emergency.requested(EmergencyType.MEDICAL) == 3

        outcome = await orchestrator.dispatch(resource, emergency, 2)

        assert outcome.resource is not None and outcome.resource.quantity == 8
        assert outcome.emergency is not None
        assert outcome.emergency.dispatched[EmergencyType.MEDICAL] == 2
        assert orchestrator.store.remaining_needed(SPRINGFIELD, EmergencyType.MEDICAL) == 1

        # Optimistic effects reached the cache and the session snapshot.
        cached = {r.key: r.quantity for r in cache.get_resources() or []}
        assert cached[MEDICAL_SOURCE] == 8
        snapshot = orchestrator.recovery.load()
        assert snapshot is not None
        assert snapshot.dispatched_count == 2

        # A later poll carries no dispatch history; local counts survive it.
        await orchestrator.refresh_data()
        refreshed = orchestrator.store.get_emergency(SPRINGFIELD)
        assert refreshed is not None
        assert refreshed.dispatched[EmergencyType.MEDICAL] == 2

        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_dispatch_timeout_leaves_state_untouched(
    backend: FakeSimulationBackend, transport: FakeTransport, fast_config: EmerceryConfig
) -> None:
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        resource = orchestrator.store.get_resource(MEDICAL_SOURCE)
        emergency = orchestrator.store.get_emergency(SPRINGFIELD)
        assert resource is not None and emergency is not None

        backend.delays["/medical/dispatch"] = 1.0
        with pytest.raises(EmerceryTimeoutError):
            await orchestrator.dispatch(resource, emergency, 2, timeout=0.05)

        current = orchestrator.store.get_emergency(SPRINGFIELD)
        assert current is not None
        assert current.dispatched[EmergencyType.MEDICAL] == 0
        assert orchestrator.store.total_dispatched == 0
        snapshot = orchestrator.recovery.load()
        assert snapshot is not None and snapshot.dispatched_count == 0
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_status_leaving_running_stops_status_and_data_pollers(
    backend: FakeSimulationBackend, transport: FakeTransport, fast_config: EmerceryConfig
) -> None:
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        orchestrator.set_auto_fetch(True, 1.0)
        pollers = orchestrator.pollers
        assert pollers["data"].is_running
        assert pollers["status"].is_running
        assert pollers["auto_fetch"].is_running

        backend.status = "Stopped"
        assert await wait_until(lambda: not pollers["status"].is_running)

        assert not pollers["data"].is_running
        assert not pollers["auto_fetch"].is_running
        assert not pollers["elapsed"].is_running
        assert orchestrator.is_running is False
        assert orchestrator.store.status is None
        assert orchestrator.recovery.load() is None
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_restarting_replaces_pollers_instead_of_duplicating(
    transport: FakeTransport, fast_config: EmerceryConfig
) -> None:
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        await orchestrator.start_simulation("default", 10, 5)
        await asyncio.sleep(0)

        live = [t for t in asyncio.all_tasks() if t.get_name().startswith("poller:") and not t.done()]
        assert sorted(t.get_name() for t in live) == ["poller:data", "poller:elapsed", "poller:status"]
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_shutdown_leaves_no_ghost_ticks(transport: FakeTransport, fast_config: EmerceryConfig) -> None:
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        states: list[DashboardState] = []
        orchestrator.subscribe(states.append)
        await orchestrator.start_simulation("default", 10, 5)
        await asyncio.sleep(0.05)

        await orchestrator.shutdown()
        await orchestrator.shutdown()
        seen_requests = len(transport.requests)
        seen_states = len(states)
        await asyncio.sleep(0.08)

        assert len(transport.requests) == seen_requests
        assert len(states) == seen_states
        assert all(not p.is_running for p in orchestrator.pollers.values())
        with pytest.raises(EmerceryError):
            await orchestrator.start_simulation("default", 10, 5)


@pytest.mark.asyncio
async def test_stop_simulation_clears_snapshot(backend: FakeSimulationBackend, transport: FakeTransport) -> None:
    async with EmerceryClient(EmerceryConfig(), transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        assert orchestrator.recovery.load() is not None

        status = await orchestrator.stop_simulation()

        assert status is not None
        assert backend.status == "Stopped"
        assert backend.count("POST", "/control/stop") == 1
        assert orchestrator.recovery.load() is None
        assert all(not p.is_running for p in orchestrator.pollers.values())
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_auto_mode_uses_auto_backend_and_skips_manual_pollers(
    backend: FakeSimulationBackend, transport: FakeTransport, fast_config: EmerceryConfig
) -> None:
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        orchestrator.set_auto_fetch(True, 2.0)
        await orchestrator.start_simulation("auto-seed", 50, 7, auto=True)

        assert backend.bodies["/simulate"]["targetDispatches"] == 50
        assert backend.count("GET", "/control/reset") == 0
        pollers = orchestrator.pollers
        assert pollers["status"].is_running
        assert pollers["elapsed"].is_running
        assert not pollers["data"].is_running
        assert not pollers["auto_fetch"].is_running
        snapshot = orchestrator.recovery.load()
        assert snapshot is not None and snapshot.auto_dispatch is True

        await orchestrator.stop_simulation()
        assert backend.count("POST", "/simulate/stop") == 1
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_auto_fetch_respects_active_call_limit(
    backend: FakeSimulationBackend, transport: FakeTransport
) -> None:
    backend.incoming.extend(
        [
            make_call("Ogdenville", "Shelby", {"Police": 1}),
            make_call("North Haverbrook", "Shelby", {"Fire": 2}),
        ]
    )
    async with EmerceryClient(EmerceryConfig(), transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 2)

        await orchestrator._auto_fetch_tick()
        assert backend.count("GET", "/calls/next") == 1
        assert len(orchestrator.store.emergencies) == 2

        # Two active calls, maximum two: no new call is requested.
        await orchestrator._auto_fetch_tick()
        assert backend.count("GET", "/calls/next") == 1
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_auto_fetch_stops_itself_when_not_running(
    backend: FakeSimulationBackend, transport: FakeTransport
) -> None:
    async with EmerceryClient(EmerceryConfig(), transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        orchestrator.set_auto_fetch(True, 1.0)
        assert orchestrator.pollers["auto_fetch"].is_running

        backend.status = "Idle"
        await orchestrator._auto_fetch_tick()

        assert not orchestrator.pollers["auto_fetch"].is_running
        assert backend.count("GET", "/calls/next") == 0
        await orchestrator.shutdown()


def test_auto_fetch_interval_is_bounded(transport: FakeTransport) -> None:
    orchestrator = PollingOrchestrator(EmerceryClient(transport=transport))
    with pytest.raises(EmerceryValidationError):
        orchestrator.set_auto_fetch(True, 0.5)
    with pytest.raises(EmerceryValidationError):
        orchestrator.set_auto_fetch(True, 31)
    # Not running yet: enabling only records the preference.
    orchestrator.set_auto_fetch(True, 30)
    assert orchestrator.state.auto_fetch_enabled is True
    assert orchestrator.state.auto_fetch_interval == 30
    assert not orchestrator.pollers["auto_fetch"].is_running


@pytest.mark.asyncio
async def test_dispatch_preconditions_fail_before_any_request(
    backend: FakeSimulationBackend, transport: FakeTransport
) -> None:
    async with EmerceryClient(EmerceryConfig(), transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        medical = orchestrator.store.get_resource(MEDICAL_SOURCE)
        fire = orchestrator.store.get_resource(("Capital City", "Union", EmergencyType.FIRE))
        emergency = orchestrator.store.get_emergency(SPRINGFIELD)
        assert medical is not None and fire is not None and emergency is not None

        with pytest.raises(EmerceryValidationError, match="positive"):
            await orchestrator.dispatch(medical, emergency, 0)
        with pytest.raises(EmerceryValidationError, match="available"):
            await orchestrator.dispatch(medical, emergency, 11)

        await orchestrator.dispatch(fire, emergency, 1)
        with pytest.raises(EmerceryValidationError, match="needs no more"):
            await orchestrator.dispatch(fire, emergency, 1)

        police_only = make_call("Ogdenville", "Shelby", {"Police": 2})
        backend.queue.append(police_only)
        await orchestrator.refresh_data()
        ogdenville = orchestrator.store.get_emergency(("Ogdenville", "Shelby"))
        assert ogdenville is not None
        with pytest.raises(EmerceryValidationError, match="did not request"):
            await orchestrator.dispatch(medical, ogdenville, 1)

        assert backend.count("POST", "/medical/dispatch") == 0
        assert backend.count("POST", "/fire/dispatch") == 1
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_recover_resumes_counters_and_start_time(
    backend: FakeSimulationBackend, transport: FakeTransport
) -> None:
    now = 10_000.0
    recovery = SessionRecoveryManager(MemoryStore(clock=lambda: now), clock=lambda: now)
    recovery.save(
        SessionSnapshot(
            seed="resumed-seed",
            target_dispatches=40,
            max_active_calls=6,
            dispatched_count=4,
            total_distance=1.5,
            start_time=now - 65,
            last_updated=now - 10,
        )
    )

    async def accept(snapshot: SessionSnapshot) -> bool:
        return snapshot.seed == "resumed-seed"

    async with EmerceryClient(EmerceryConfig(), transport=transport) as client:
        orchestrator = PollingOrchestrator(client, recovery=recovery, clock=lambda: now)
        status = await orchestrator.recover(accept, timeout=1.0)

        assert status is not None
        assert backend.params["/control/reset"]["seed"] == "resumed-seed"
        assert orchestrator.store.total_dispatched == 4
        assert orchestrator.store.total_distance == 1.5
        assert orchestrator.state.elapsed == "00:01:05"
        snapshot = recovery.load()
        assert snapshot is not None
        assert snapshot.start_time == now - 65
        assert snapshot.dispatched_count == 4

        # Offered once per process.
        assert await orchestrator.recover(accept, timeout=1.0) is None
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_listeners_receive_state_and_can_unsubscribe(transport: FakeTransport) -> None:
    async with EmerceryClient(EmerceryConfig(), transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        received: list[DashboardState] = []

        def broken(_state: DashboardState) -> None:
            raise RuntimeError("listener bug")

        orchestrator.subscribe(broken)
        unsubscribe = orchestrator.subscribe(received.append)
        await orchestrator.start_simulation("default", 10, 5)

        assert received
        latest = received[-1]
        assert latest.running is True
        assert [c.key for c in latest.emergencies] == [SPRINGFIELD]
        assert latest.locations[0].name == "Springfield"

        unsubscribe()
        count = len(received)
        orchestrator.select_emergency(SPRINGFIELD)
        assert len(received) == count
        assert orchestrator.state.selected_emergency is not None
        await orchestrator.shutdown()


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0, "00:00:00"), (59.9, "00:00:59"), (65, "00:01:05"), (3600 * 25 + 1, "25:00:01"), (-3, "00:00:00")],
)
def test_format_elapsed(seconds: float, expected: str) -> None:
    assert format_elapsed(seconds) == expected


@pytest.mark.asyncio
async def test_failed_poll_keeps_reconciled_state(
    backend: FakeSimulationBackend, transport: FakeTransport, fast_config: EmerceryConfig
) -> None:
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        resource = orchestrator.store.get_resource(MEDICAL_SOURCE)
        emergency = orchestrator.store.get_emergency(SPRINGFIELD)
        assert resource is not None and emergency is not None
        await orchestrator.dispatch(resource, emergency, 2)
        orchestrator.select_emergency(SPRINGFIELD)
        for poller in orchestrator.pollers.values():
            poller.stop()

        backend.failures["/calls/queue"] = [503]
        backend.failures["/medical/search"] = [503]
        await orchestrator.refresh_data()

        kept = orchestrator.store.get_emergency(SPRINGFIELD)
        assert kept is not None and kept.dispatched[EmergencyType.MEDICAL] == 2
        kept_resource = orchestrator.store.get_resource(MEDICAL_SOURCE)
        assert kept_resource is not None and kept_resource.quantity == 8
        assert orchestrator.store.selected_emergency is not None
        contexts = {e.context for e in client.errors.errors()}
        assert {"fetch call queue", "fetch Medical resources"} <= contexts

        await orchestrator.refresh_data()
        after = orchestrator.store.get_emergency(SPRINGFIELD)
        assert after is not None and after.dispatched[EmergencyType.MEDICAL] == 2
        assert orchestrator.store.remaining_needed(SPRINGFIELD, EmergencyType.MEDICAL) == 1
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_failed_auto_fetch_queue_read_keeps_emergencies(
    backend: FakeSimulationBackend, transport: FakeTransport, fast_config: EmerceryConfig
) -> None:
    backend.incoming.append(make_call("Ogdenville", "Shelby", {"Police": 1}))
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        for poller in orchestrator.pollers.values():
            poller.stop()

        backend.failures["/calls/queue"] = [503]
        await orchestrator._auto_fetch_tick()

        assert [e.key for e in orchestrator.store.emergencies] == [SPRINGFIELD]
        await orchestrator.shutdown()


@pytest.mark.asyncio
@pytest.mark.parametrize(("target", "max_active"), [(0, 5), (10, 0), (-1, -1)])
async def test_start_rejects_non_positive_limits_before_any_request(
    backend: FakeSimulationBackend,
    transport: FakeTransport,
    fast_config: EmerceryConfig,
    target: int,
    max_active: int,
) -> None:
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        with pytest.raises(EmerceryValidationError):
            await orchestrator.start_simulation("default", target, max_active)
        with pytest.raises(EmerceryValidationError):
            await orchestrator.start_simulation("default", target, max_active, auto=True)

        assert transport.requests == []
        assert backend.status == "Idle"
        assert orchestrator.is_running is False
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_failed_restart_clears_running_flag(
    backend: FakeSimulationBackend, transport: FakeTransport, fast_config: EmerceryConfig
) -> None:
    async with EmerceryClient(fast_config, transport=transport) as client:
        orchestrator = PollingOrchestrator(client)
        await orchestrator.start_simulation("default", 10, 5)
        assert orchestrator.is_running

        backend.failures["/control/reset"] = [500]
        with pytest.raises(EmerceryError):
            await orchestrator.start_simulation("default", 10, 5)

        assert orchestrator.is_running is False
        assert not any(p.is_running for p in orchestrator.pollers.values())
        await orchestrator.shutdown()
