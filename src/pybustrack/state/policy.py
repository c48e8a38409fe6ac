"""Deterministic write policy for persisted bus records.

No parsing happens here; callers pass already-normalized timestamps and
stored documents.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pybustrack._constants import SIMULATED_ID_PREFIX


def should_accept_fix(*, cached_fix_time: datetime | None, incoming_fix_time: datetime) -> bool:
    """Decide whether a bus record built from *incoming_fix_time* may be written.

    A fix never moves a stored record backwards in time. Rewriting the same
    fix is accepted so that repeated syncs stay idempotent.
    """
    if cached_fix_time is None:
        return True
    return incoming_fix_time >= cached_fix_time


def is_demo_bus_document(document: dict[str, Any]) -> bool:
    """Simulated bus record, or one whose live flag is missing."""
    if document.get("isLiveData") is not True:
        return True
    return str(document.get("id", "")).startswith(SIMULATED_ID_PREFIX)


def is_demo_aggregate_document(document: dict[str, Any]) -> bool:
    return document.get("isLiveData") is not True
