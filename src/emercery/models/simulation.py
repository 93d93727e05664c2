"""Auto-dispatch backend models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from emercery.models._base import EmerceryBaseModel
from emercery.models.control import SimulationState


class SimulationConfig(BaseModel):
    """Body of ``POST /simulate``.

    The auto-dispatch backend mixes camelCase and snake_case keys, so the
    aliases are spelled out rather than generated.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    api_url: str
    seed: str = "default"
    target_dispatches: int = Field(default=10000, gt=0, alias="targetDispatches")
    max_active_calls: int = Field(default=100, gt=0, alias="maxActiveCalls")
    poll_interval: float = Field(default=0.3, gt=0)
    status_interval: float = Field(default=5.0, gt=0)

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)


class AutoDispatchStatus(EmerceryBaseModel):
    """Status reported by ``/simulate/status``.

    The payload shape is owned by the auto-dispatch backend; only
    ``status`` is interpreted, everything else stays in ``raw``.
    """

    status: SimulationState = SimulationState.UNKNOWN

    @property
    def is_running(self) -> bool:
        return self.status == SimulationState.RUNNING
