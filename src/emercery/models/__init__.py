"""Data models for the simulation API payloads."""

from emercery.models._base import EmerceryBaseModel, EmerceryEnum
from emercery.models.control import ControlStatus, DispatchErrors, DispatchRequest, SimulationState
from emercery.models.emergency import EmergencyCall, EmergencyKey, EmergencyRequest, EmergencyType
from emercery.models.health import HealthState, HealthStatus, SystemStatus
from emercery.models.location import Location
from emercery.models.resource import EmergencyResource, ResourceAvailability, ResourceKey
from emercery.models.simulation import AutoDispatchStatus, SimulationConfig

__all__ = [
    "AutoDispatchStatus",
    "ControlStatus",
    "DispatchErrors",
    "DispatchRequest",
    "EmerceryBaseModel",
    "EmerceryEnum",
    "EmergencyCall",
    "EmergencyKey",
    "EmergencyRequest",
    "EmergencyResource",
    "EmergencyType",
    "HealthState",
    "HealthStatus",
    "Location",
    "ResourceAvailability",
    "ResourceKey",
    "SimulationConfig",
    "SimulationState",
    "SystemStatus",
]
