"""Sync engine state machine values."""

from __future__ import annotations

from enum import StrEnum


class SyncMode(StrEnum):
    """Lifecycle state of a :class:`~pybustrack.sync.engine.SyncEngine`.

    ``UNINITIALIZED`` -> ``CONNECTING`` -> ``LIVE`` | ``DEMO``. ``ERROR`` ends
    an initialization attempt that could neither go live nor publish the
    demo fleet; ``STOPPED`` follows an explicit stop.
    """

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    LIVE = "live"
    DEMO = "demo"
    ERROR = "error"
    STOPPED = "stopped"

    @property
    def running(self) -> bool:
        return self in (SyncMode.LIVE, SyncMode.DEMO)
