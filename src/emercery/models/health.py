"""Backend health models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from emercery.models._base import EmerceryEnum


class HealthState(EmerceryEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthStatus(BaseModel):
    """Result of probing one backend."""

    model_config = ConfigDict(frozen=True)

    status: HealthState
    response_time: float
    """Probe latency in milliseconds."""
    message: str
    last_checked: datetime


class SystemStatus(BaseModel):
    """Health of both backends the dashboard depends on."""

    model_config = ConfigDict(frozen=True)

    main_api: HealthStatus
    auto_dispatch_api: HealthStatus
    last_updated: datetime

    @property
    def is_healthy(self) -> bool:
        return self.main_api.status == HealthState.HEALTHY and self.auto_dispatch_api.status == HealthState.HEALTHY
