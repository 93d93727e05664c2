"""Emergency resource (supply group) model."""

from __future__ import annotations

from pydantic import Field, field_validator

from emercery.models._base import EmerceryBaseModel
from emercery.models.emergency import EmergencyType

ResourceKey = tuple[str, str, EmergencyType]
"""Identity of a supply group: ``(city, county, type)``."""


class EmergencyResource(EmerceryBaseModel):
    """Units of one type available at one location.

    ``/{type}/search`` does not echo the type back, so the client injects
    it before validation.
    """

    city: str
    county: str
    type: EmergencyType
    latitude: float = 0.0
    longitude: float = 0.0
    quantity: int = Field(default=0, ge=0)

    @field_validator("city", "county")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @property
    def key(self) -> ResourceKey:
        return (self.city, self.county, self.type)


class ResourceAvailability(EmerceryBaseModel):
    """Aggregated availability for one resource type."""

    type: EmergencyType
    available: int = 0
    locations: int = 0
