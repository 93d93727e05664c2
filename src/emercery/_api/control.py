"""Simulation control endpoints.

Endpoints:
  - GET /control/status
  - GET /control/reset?seed=&targetDispatches=&maxActiveCalls=
  - POST /control/stop
"""

from __future__ import annotations

from emercery._api._common import main_url, parse_model
from emercery._constants import CONTROL_RESET_ENDPOINT, CONTROL_STATUS_ENDPOINT, CONTROL_STOP_ENDPOINT
from emercery._transport import Transport
from emercery.config import EmerceryConfig
from emercery.models.control import ControlStatus


async def fetch_control_status(config: EmerceryConfig, transport: Transport) -> ControlStatus:
    response = await transport.request("GET", main_url(config, CONTROL_STATUS_ENDPOINT))
    return parse_model(ControlStatus, response)


async def reset_control(
    config: EmerceryConfig,
    transport: Transport,
    *,
    seed: str,
    target_dispatches: int,
    max_active_calls: int,
) -> ControlStatus | None:
    """(Re)start the simulation.  Some backends answer with an empty body."""
    response = await transport.request(
        "GET",
        main_url(config, CONTROL_RESET_ENDPOINT),
        params={
            "seed": seed,
            "targetDispatches": target_dispatches,
            "maxActiveCalls": max_active_calls,
        },
    )
    if not isinstance(response.data, dict):
        return None
    return parse_model(ControlStatus, response)


async def stop_control(config: EmerceryConfig, transport: Transport) -> ControlStatus | None:
    response = await transport.request("POST", main_url(config, CONTROL_STOP_ENDPOINT))
    if not isinstance(response.data, dict):
        return None
    return parse_model(ControlStatus, response)
