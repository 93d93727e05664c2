"""Static location list endpoint."""

from __future__ import annotations

from emercery._api._common import main_url, parse_model_list
from emercery._constants import LOCATIONS_ENDPOINT
from emercery._transport import Transport
from emercery.config import EmerceryConfig
from emercery.models.location import Location


async def fetch_locations(config: EmerceryConfig, transport: Transport) -> list[Location]:
    response = await transport.request("GET", main_url(config, LOCATIONS_ENDPOINT))
    return parse_model_list(Location, response)
