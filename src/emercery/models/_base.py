"""Base model and enum for simulation API payloads.

Every response model inherits from :class:`EmerceryBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase API keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that drops ``None`` values so
  the field default is used.
* A ``raw`` dict that captures the original payload.

State enums inherit from :class:`EmerceryEnum` which matches values
case-insensitively and, when the subclass defines ``UNKNOWN``, maps
anything unrecognised to it instead of raising ``ValueError``.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class EmerceryEnum(enum.StrEnum):
    """Base for string enums sent by the simulation backends."""

    @classmethod
    def _missing_(cls, value: object) -> EmerceryEnum | None:
        if isinstance(value, str):
            wanted = value.strip().lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
        # noinspection PyUnresolvedReferences
        if hasattr(cls, "UNKNOWN"):
            unknown: EmerceryEnum = cls.UNKNOWN  # type: ignore[attr-defined]
            return unknown
        return None


class EmerceryBaseModel(BaseModel):
    """Base for simulation API response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict)
    """Original API response dict."""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        """Drop ``None`` values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        cleaned = {key: value for key, value in values.items() if value is not None}
        # Keep an explicitly passed raw= (e.g. model_copy round-trips).
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned

    def to_payload(self) -> dict[str, Any]:
        """Serialise back to the wire shape, without the ``raw`` stash."""
        return self.model_dump(mode="json", by_alias=True, exclude={"raw"})
