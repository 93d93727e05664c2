"""Resource search and dispatch endpoints.

Endpoints:
  - GET  /{type}/search
  - GET  /{type}/searchbycity?county=&city=
  - POST /{type}/dispatch
"""

from __future__ import annotations

import logging

from emercery._api._common import main_url, parse_model_list, type_segment
from emercery._constants import (
    RESOURCE_DISPATCH_ENDPOINT,
    RESOURCE_SEARCH_BY_CITY_ENDPOINT,
    RESOURCE_SEARCH_ENDPOINT,
)
from emercery._transport import Transport
from emercery.config import EmerceryConfig
from emercery.exceptions import EmerceryApiError
from emercery.models.control import DispatchRequest
from emercery.models.emergency import EmergencyType
from emercery.models.resource import EmergencyResource

_logger = logging.getLogger(__name__)


async def fetch_resources(
    config: EmerceryConfig,
    transport: Transport,
    resource_type: EmergencyType,
) -> list[EmergencyResource]:
    """Fetch available resources of one type, tagging each with that type."""
    endpoint = RESOURCE_SEARCH_ENDPOINT.format(type=type_segment(resource_type))
    response = await transport.request("GET", main_url(config, endpoint))
    return parse_model_list(EmergencyResource, response, type=resource_type.value)


async def fetch_resource_count_by_city(
    config: EmerceryConfig,
    transport: Transport,
    resource_type: EmergencyType,
    *,
    county: str,
    city: str,
) -> int:
    """Number of available units of *resource_type* at one location."""
    endpoint = RESOURCE_SEARCH_BY_CITY_ENDPOINT.format(type=type_segment(resource_type))
    response = await transport.request(
        "GET",
        main_url(config, endpoint),
        params={"county": county, "city": city},
    )
    try:
        return int(response.data)
    except (TypeError, ValueError) as exc:
        raise EmerceryApiError(
            f"{endpoint} returned a non-numeric count: {response.data!r}",
            url=response.url,
            method=response.method,
            retries=response.retries,
            status_code=response.status,
        ) from exc


async def dispatch_resource(
    config: EmerceryConfig,
    transport: Transport,
    resource_type: EmergencyType,
    request: DispatchRequest,
    *,
    timeout: float | None = None,
) -> str:
    """Dispatch units; returns the backend's (plain-text) acknowledgement."""
    endpoint = RESOURCE_DISPATCH_ENDPOINT.format(type=type_segment(resource_type))
    response = await transport.request(
        "POST",
        main_url(config, endpoint),
        json_body=request.to_payload(),
        timeout=timeout,
        max_attempts=config.dispatch_max_attempts,
    )
    _logger.debug("Dispatch %s acknowledged: %r", resource_type, response.data)
    return "" if response.data is None else str(response.data)
