"""Authenticated telemetry user model."""

from __future__ import annotations

from pybustrack.models._base import TelemetryBaseModel


class TelemetryUser(TelemetryBaseModel):
    """Account returned by the session endpoint after login."""

    id: int
    name: str = ""
    email: str = ""
    readonly: bool = False
    administrator: bool = False
