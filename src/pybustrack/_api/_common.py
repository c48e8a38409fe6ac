"""Shared helpers for telemetry API endpoint modules.

It is internal to pybustrack and may change at any time.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from pybustrack.exceptions import DataFormatError

T = TypeVar("T")


def parse_list_payload(endpoint: str, payload: Any, adapter: TypeAdapter[list[T]]) -> list[T]:
    """Validate a JSON array payload into typed models.

    Raises :class:`DataFormatError` when the payload is not a list or any
    element fails validation.
    """
    if not isinstance(payload, list):
        raise DataFormatError(
            f"Expected a JSON array from {endpoint}, got {type(payload).__name__}",
            endpoint=endpoint,
        )
    try:
        return adapter.validate_python(payload)
    except ValidationError as exc:
        raise DataFormatError(
            f"Malformed payload from {endpoint}: {exc.error_count()} validation error(s)",
            endpoint=endpoint,
        ) from exc
