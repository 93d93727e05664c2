"""Emergency call models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from emercery.models._base import EmerceryBaseModel, EmerceryEnum


class EmergencyType(EmerceryEnum):
    """Resource/emergency categories handled by the simulation."""

    MEDICAL = "Medical"
    POLICE = "Police"
    FIRE = "Fire"
    RESCUE = "Rescue"
    UTILITY = "Utility"


class EmergencyRequest(BaseModel):
    """A single ``(type, quantity)`` demand on an emergency call.

    The queue payload uses PascalCase keys (``Type``, ``Quantity``).
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    type: EmergencyType = Field(alias="Type")
    quantity: int = Field(default=0, ge=0, alias="Quantity")


EmergencyKey = tuple[str, str]
"""Identity of an emergency call: ``(city, county)``."""


class EmergencyCall(EmerceryBaseModel):
    """An emergency waiting in the call queue.

    ``dispatched`` is never sent by the backend; it is derived client-side
    and carried across polls by :class:`emercery.state.DispatchStateStore`.
    """

    city: str
    county: str
    latitude: float = 0.0
    longitude: float = 0.0
    requests: list[EmergencyRequest] = Field(default_factory=list)
    dispatched: dict[EmergencyType, int] = Field(default_factory=dict)

    @field_validator("city", "county")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @property
    def key(self) -> EmergencyKey:
        return (self.city, self.county)

    @property
    def requested_types(self) -> list[EmergencyType]:
        """Requested types in payload order, without duplicates."""
        seen: list[EmergencyType] = []
        for req in self.requests:
            if req.type not in seen:
                seen.append(req.type)
        return seen

    def requested(self, resource_type: EmergencyType) -> int:
        """Total quantity requested for *resource_type*."""
        return sum(req.quantity for req in self.requests if req.type == resource_type)

    def needs(self, resource_type: EmergencyType) -> bool:
        return any(req.type == resource_type for req in self.requests)
