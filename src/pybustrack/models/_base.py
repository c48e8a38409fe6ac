"""Base models and enum for telemetry payloads and persisted documents.

Every telemetry response model inherits from :class:`TelemetryBaseModel`
which provides:

* ``alias_generator=to_camel`` so camelCase API keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips sentinel values
  (``None``, ``""``, NaN) so the field default is used.
* A ``raw`` dict that captures the original payload.

Persisted records inherit from :class:`DocumentModel`, which serializes
to camelCase documents and never writes ``None`` placeholders.

State enums inherit from :class:`TelemetryEnum` which resolves any value
without a mapped member to ``UNKNOWN`` instead of raising ``ValueError``.
"""

from __future__ import annotations

import enum
import math
from datetime import datetime
from typing import Annotated, Any, Self

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer, model_validator
from pydantic.alias_generators import to_camel

from pybustrack.ingestion.normalize import ensure_utc, format_timestamp, parse_timestamp

_SENTINELS = frozenset({"", "NaN", "nan"})


def _require_timestamp(value: Any) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError("timestamp is required")
    return parsed


TelemetryTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Optional telemetry timestamp coerced to an aware UTC datetime."""

RequiredTimestamp = Annotated[datetime, BeforeValidator(_require_timestamp)]
"""Mandatory telemetry timestamp coerced to an aware UTC datetime."""

DocumentTimestamp = Annotated[
    datetime,
    BeforeValidator(lambda value: ensure_utc(value) if isinstance(value, datetime) else _require_timestamp(value)),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]
"""UTC timestamp persisted as fixed-width ISO-8601 text."""


class TelemetryEnum(enum.StrEnum):
    """Base for string state enums.

    Every subclass **must** define ``UNKNOWN``. Matching is
    case-insensitive; unmapped values resolve to ``UNKNOWN``.
    """

    @classmethod
    def _missing_(cls, value: object) -> TelemetryEnum:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        if hasattr(cls, "UNKNOWN"):
            unknown: TelemetryEnum = cls.UNKNOWN  # type: ignore[attr-defined]
            return unknown
        return next(iter(cls))


class TelemetryBaseModel(BaseModel):
    """Base for telemetry response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original API payload."""

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip sentinel values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        cleaned = TelemetryBaseModel._clean_dict(values)
        # Keep an explicitly provided raw= (kwargs construction).
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned


class DocumentModel(BaseModel):
    """Base for records persisted in the shared document store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to a camelCase JSON document, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Self:
        return cls.model_validate(document)
