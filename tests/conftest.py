from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import pytest

from emercery._transport import ApiResponse
from emercery.config import EmerceryConfig
from emercery.exceptions import EmerceryClientError, EmerceryServerError, EmerceryTimeoutError

# ---------------------------------------------------------------------------
# Fake simulation backend
# ---------------------------------------------------------------------------

RESOURCE_TYPES = ("medical", "police", "fire", "rescue", "utility")


def make_call(city: str, county: str, requests: Mapping[str, int], *, lat: float = 0.0, lon: float = 0.0) -> dict:
    return {
        "city": city,
        "county": county,
        "latitude": lat,
        "longitude": lon,
        "requests": [{"Type": t, "Quantity": q} for t, q in requests.items()],
    }


def make_resource(city: str, county: str, quantity: int, *, lat: float = 0.0, lon: float = 0.0) -> dict:
    return {"city": city, "county": county, "latitude": lat, "longitude": lon, "quantity": quantity}


@dataclass
class FakeSimulationBackend:
    """In-memory stand-in for both simulation backends.

    ``handle`` answers one request as ``(status, body)``; it is shared by the
    in-process ``Transport`` double below and by the ``aiohttp.web`` app used
    in the end-to-end tests.
    """

    status: str = "Idle"
    seed: str = ""
    target_dispatches: int = 0
    max_active_calls: int = 0
    total_dispatches: int = 0
    distance: float = 0.0
    locations: list[dict] = field(default_factory=list)
    resources: dict[str, list[dict]] = field(default_factory=dict)
    queue: list[dict] = field(default_factory=list)
    incoming: list[dict] = field(default_factory=list)
    calls: list[tuple[str, str]] = field(default_factory=list)
    bodies: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    failures: dict[str, list[int]] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    auto_running: bool = False

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    def status_payload(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "runningTime": "00:00:01",
            "seed": self.seed,
            "requestCount": len(self.queue),
            "maxActiveCalls": self.max_active_calls,
            "totalDispatches": self.total_dispatches,
            "targetDispatches": self.target_dispatches,
            "distance": self.distance,
            "penalty": 0,
            "httpRequests": len(self.calls),
            "emulatorVersion": 1.0,
            "signature": "sig",
            "checksum": "chk",
            "errors": {"missed": 0, "overDispatched": 0},
        }

    def handle(self, method: str, path: str, params: Mapping[str, Any] | None, body: Any) -> tuple[int, Any]:
        self.calls.append((method, path))
        if params:
            self.params[path] = dict(params)
        if body is not None:
            self.bodies[path] = body

        queued = self.failures.get(path)
        if queued:
            return queued.pop(0), {"detail": f"injected failure for {path}"}

        parts = path.strip("/").split("/")
        if path == "/locations":
            return 200, self.locations
        if path == "/calls/queue":
            return 200, self.queue
        if path == "/calls/next":
            if not self.incoming:
                return 200, None
            call = self.incoming.pop(0)
            self.queue.append(call)
            return 200, call
        if path == "/control/status":
            return 200, self.status_payload()
        if path == "/control/reset":
            self.status = "Running"
            self.seed = str(params.get("seed", "")) if params else ""
            self.target_dispatches = int(params.get("targetDispatches", 0)) if params else 0
            self.max_active_calls = int(params.get("maxActiveCalls", 0)) if params else 0
            self.total_dispatches = 0
            return 200, self.status_payload()
        if path == "/control/stop":
            self.status = "Stopped"
            return 200, self.status_payload()
        if path == "/simulate" and method == "POST":
            self.auto_running = True
            self.status = "Running"
            self.seed = body.get("seed", "") if isinstance(body, dict) else ""
            return 200, {"message": "Simulation started"}
        if path == "/simulate/stop":
            self.auto_running = False
            self.status = "Stopped"
            return 200, {"message": "Simulation stopped"}
        if path == "/simulate/status":
            return 200, {"status": "Running" if self.auto_running else "Idle"}
        if path == "/health":
            return 200, {"status": "ok"}
        if len(parts) == 2 and parts[0] in RESOURCE_TYPES:
            rtype, action = parts
            pool = self.resources.setdefault(rtype, [])
            if action == "search":
                return 200, pool
            if action == "searchbycity" and params:
                for res in pool:
                    if res["city"] == params.get("city") and res["county"] == params.get("county"):
                        return 200, res["quantity"]
                return 200, 0
            if action == "dispatch" and isinstance(body, dict):
                for res in pool:
                    if res["city"] == body["sourceCity"] and res["county"] == body["sourceCounty"]:
                        if res["quantity"] < body["quantity"]:
                            return 400, {"detail": "Not enough resources available"}
                        res["quantity"] -= body["quantity"]
                        self.total_dispatches += body["quantity"]
                        return 200, "Dispatched"
                return 404, {"detail": "Source not found"}
        return 404, {"message": f"Unknown route {method} {path}"}


@dataclass
class FakeTransport:
    """``Transport`` double that routes straight into a :class:`FakeSimulationBackend`."""

    backend: FakeSimulationBackend
    default_timeout: float = 10.0
    requests: list[dict[str, Any]] = field(default_factory=list)

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
        path = urlsplit(url).path
        self.requests.append(
            {
                "method": method,
                "url": url,
                "params": params,
                "json": json_body,
                "timeout": timeout,
                "max_attempts": max_attempts,
            }
        )
        delay = self.backend.delays.get(path, 0.0)
        deadline = timeout if timeout is not None else self.default_timeout
        if delay > deadline:
            await asyncio.sleep(deadline)
            raise EmerceryTimeoutError(f"{method} {url} timed out", url=url, method=method)
        if delay:
            await asyncio.sleep(delay)

        status, data = self.backend.handle(method, path, params, json_body)
        if status >= 500:
            raise EmerceryServerError(str(data), url=url, method=method, status_code=status)
        if status >= 400:
            detail = data.get("detail") or data.get("message") if isinstance(data, dict) else str(data)
            raise EmerceryClientError(detail, url=url, method=method, status_code=status)
        return ApiResponse(data=data, status=status, response_time=5.0, retries=0, url=url, method=method)


@pytest.fixture
def backend() -> FakeSimulationBackend:
    return FakeSimulationBackend(
        locations=[{"name": "Springfield", "county": "Greene", "lat": 0.3, "long": 0.4}],
        resources={
            "medical": [make_resource("Shelbyville", "Shelby", 10, lat=0.0, lon=0.0)],
            "fire": [make_resource("Capital City", "Union", 4, lat=1.0, lon=1.0)],
        },
        queue=[make_call("Springfield", "Greene", {"Medical": 3, "Fire": 1}, lat=0.3, lon=0.4)],
    )


@pytest.fixture
def transport(backend: FakeSimulationBackend) -> FakeTransport:
    return FakeTransport(backend)


@pytest.fixture
def fast_config() -> EmerceryConfig:
    return EmerceryConfig(
        request_timeout=1.0,
        retry_base_delay=0.01,
        data_poll_interval=0.02,
        status_poll_interval=0.02,
        elapsed_tick_interval=0.02,
        auto_fetch_interval=1.0,
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(0.005)
    return True
