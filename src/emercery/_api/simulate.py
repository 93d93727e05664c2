"""Auto-dispatch backend endpoints.

Endpoints:
  - POST /simulate
  - POST /simulate/stop
  - GET  /simulate/status
  - GET  /health
"""

from __future__ import annotations

from typing import Any

from emercery._api._common import auto_url, main_url, parse_model
from emercery._constants import (
    CONTROL_STATUS_ENDPOINT,
    HEALTH_ENDPOINT,
    SIMULATE_ENDPOINT,
    SIMULATE_STATUS_ENDPOINT,
    SIMULATE_STOP_ENDPOINT,
)
from emercery._transport import ApiResponse, Transport
from emercery.config import EmerceryConfig
from emercery.models.simulation import AutoDispatchStatus, SimulationConfig


async def start_simulation(config: EmerceryConfig, transport: Transport, sim_config: SimulationConfig) -> Any:
    response = await transport.request("POST", auto_url(config, SIMULATE_ENDPOINT), json_body=sim_config.to_payload())
    return response.data


async def stop_simulation(config: EmerceryConfig, transport: Transport) -> Any:
    response = await transport.request("POST", auto_url(config, SIMULATE_STOP_ENDPOINT))
    return response.data


async def fetch_simulation_status(config: EmerceryConfig, transport: Transport) -> AutoDispatchStatus | None:
    response = await transport.request("GET", auto_url(config, SIMULATE_STATUS_ENDPOINT))
    if not isinstance(response.data, dict) or not response.data:
        return None
    return parse_model(AutoDispatchStatus, response)


async def probe_health(config: EmerceryConfig, transport: Transport, *, auto: bool, timeout: float) -> ApiResponse:
    """Single-attempt liveness probe of one backend.

    The auto-dispatch backend exposes ``/health``; the main API has no such
    route, so its cheapest read (``/control/status``) stands in.
    """
    url = auto_url(config, HEALTH_ENDPOINT) if auto else main_url(config, CONTROL_STATUS_ENDPOINT)
    return await transport.request("GET", url, timeout=timeout, max_attempts=1)
