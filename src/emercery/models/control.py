"""Simulation control models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from emercery.models._base import EmerceryBaseModel, EmerceryEnum


class SimulationState(EmerceryEnum):
    """``status`` values reported by ``/control/status``."""

    UNKNOWN = "Unknown"
    IDLE = "Idle"
    RUNNING = "Running"
    STOPPED = "Stopped"


class DispatchErrors(EmerceryBaseModel):
    """Error counters kept by the simulation."""

    missed: int = 0
    over_dispatched: int = 0


class ControlStatus(EmerceryBaseModel):
    """Snapshot of the simulation as reported by the control endpoint.

    ``signature`` and ``checksum`` are opaque and passed through unchanged.
    """

    status: SimulationState = SimulationState.UNKNOWN
    running_time: str = ""
    seed: str = ""
    request_count: int = 0
    """Number of currently active calls."""
    max_active_calls: int = 0
    total_dispatches: int = 0
    target_dispatches: int = 0
    distance: float = 0.0
    penalty: float = 0.0
    http_requests: int = 0
    emulator_version: float | None = None
    signature: str = ""
    checksum: str = ""
    errors: DispatchErrors = Field(default_factory=DispatchErrors)

    @property
    def is_running(self) -> bool:
        return self.status == SimulationState.RUNNING

    @property
    def active_calls(self) -> int:
        return self.request_count


class DispatchRequest(BaseModel):
    """Body of ``POST /{type}/dispatch``."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    source_county: str = Field(min_length=1)
    source_city: str = Field(min_length=1)
    target_county: str = Field(min_length=1)
    target_city: str = Field(min_length=1)
    quantity: int = Field(gt=0)

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)
