"""Reduce a position snapshot to the latest fix per device."""

from __future__ import annotations

from collections.abc import Iterable

from pybustrack.models.position import PositionReport


def latest_positions(positions: Iterable[PositionReport]) -> dict[int, PositionReport]:
    """Map each device id to its most recent fix.

    A fix replaces the current entry only when its ``fix_time`` is
    strictly newer; equal or older fixes are discarded, so the result does
    not depend on the order of *positions* except for exact ties, where
    the first one seen is kept.
    """
    latest: dict[int, PositionReport] = {}
    for position in positions:
        current = latest.get(position.device_id)
        if current is None or position.fix_time > current.fix_time:
            latest[position.device_id] = position
    return latest
