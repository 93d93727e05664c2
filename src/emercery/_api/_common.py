"""Shared helpers for simulation API endpoint modules.

This module centralizes the most repeated patterns:
- joining base URLs and endpoint paths
- validating response bodies against pydantic models at the boundary

It is internal to emercery and may change at any time.
"""

from __future__ import annotations

from typing import Any, TypeVar
from urllib.parse import quote

from pydantic import BaseModel, ValidationError

from emercery._transport import ApiResponse
from emercery.config import EmerceryConfig
from emercery.exceptions import EmerceryApiError

M = TypeVar("M", bound=BaseModel)


def main_url(config: EmerceryConfig, endpoint: str) -> str:
    return f"{config.api_base_url.rstrip('/')}{endpoint}"


def auto_url(config: EmerceryConfig, endpoint: str) -> str:
    return f"{config.auto_api_base_url.rstrip('/')}{endpoint}"


def type_segment(resource_type: str) -> str:
    """Path segment for a resource type (``Medical`` → ``medical``)."""
    return quote(str(resource_type).strip().lower(), safe="")


def _invalid(response: ApiResponse, detail: str) -> EmerceryApiError:
    return EmerceryApiError(
        f"{response.method} {response.url} returned an unexpected payload: {detail}",
        url=response.url,
        method=response.method,
        retries=response.retries,
        status_code=response.status,
    )


def parse_model(model: type[M], response: ApiResponse, **extra: Any) -> M:
    """Validate a JSON object body as *model*; *extra* keys are merged in first."""
    data = response.data
    if not isinstance(data, dict):
        raise _invalid(response, f"expected an object, got {type(data).__name__}")
    try:
        return model.model_validate({**extra, **data} if extra else data)
    except ValidationError as exc:
        raise _invalid(response, str(exc)) from exc


def parse_model_list(model: type[M], response: ApiResponse, **extra: Any) -> list[M]:
    """Validate a JSON array body as a list of *model*; an empty body is an empty list."""
    data = response.data
    if data is None:
        return []
    if not isinstance(data, list):
        raise _invalid(response, f"expected a list, got {type(data).__name__}")
    try:
        return [model.model_validate({**item, **extra} if extra and isinstance(item, dict) else item) for item in data]
    except ValidationError as exc:
        raise _invalid(response, str(exc)) from exc
