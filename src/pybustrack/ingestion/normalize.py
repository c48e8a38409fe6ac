"""Normalization helpers.

Centralizes defensive parsing of loosely typed telemetry values.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1e11


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Convert a telemetry timestamp to an aware UTC datetime.

    Accepts ISO-8601 strings (the telemetry server's native format, with or
    without a ``Z`` suffix), epoch seconds or milliseconds, and datetimes.
    Returns ``None`` for ``None``/empty input and raises :class:`ValueError`
    for anything else that cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        numeric = safe_float(text)
        if numeric is not None:
            return parse_timestamp(numeric)
        return ensure_utc(datetime.fromisoformat(text))
    raise ValueError(f"not a timestamp: {value!r}")


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO-8601 UTC rendering used for persisted documents.

    A constant width keeps lexicographic ordering of stored strings equal
    to chronological ordering.
    """
    return ensure_utc(value).isoformat(timespec="microseconds")
