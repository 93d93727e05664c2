"""Emergency call queue endpoints."""

from __future__ import annotations

from emercery._api._common import main_url, parse_model, parse_model_list
from emercery._constants import CALLS_NEXT_ENDPOINT, CALLS_QUEUE_ENDPOINT
from emercery._transport import Transport
from emercery.config import EmerceryConfig
from emercery.models.emergency import EmergencyCall


async def fetch_call_queue(config: EmerceryConfig, transport: Transport) -> list[EmergencyCall]:
    response = await transport.request("GET", main_url(config, CALLS_QUEUE_ENDPOINT))
    return parse_model_list(EmergencyCall, response)


async def fetch_next_call(config: EmerceryConfig, transport: Transport) -> EmergencyCall | None:
    """Advance the queue; ``None`` when the backend has nothing to hand out."""
    response = await transport.request("GET", main_url(config, CALLS_NEXT_ENDPOINT))
    if response.data is None:
        return None
    return parse_model(EmergencyCall, response)
