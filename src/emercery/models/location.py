"""Static location model."""

from __future__ import annotations

from emercery.models._base import EmerceryBaseModel


class Location(EmerceryBaseModel):
    """A named place from ``/locations``."""

    name: str
    county: str
    lat: float = 0.0
    long: float = 0.0
