"""Health check result model."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProbeStatus(enum.StrEnum):
    REACHABLE = "reachable"
    DEGRADED = "degraded"
    UNREACHABLE = "unreachable"


class ConnectionProbe(BaseModel):
    """Tri-state outcome of a telemetry server health check.

    ``reachable`` with ``degraded`` unset means the server answered with
    usable version info. ``degraded`` means something answered but the
    response was unusable (non-success status, rejected credentials,
    unparsable body). Neither flag set means nothing answered at all.
    """

    model_config = ConfigDict(frozen=True)

    reachable: bool
    degraded: bool = False
    message: str = ""
    version: str | None = None
    info: dict[str, Any] = Field(default_factory=dict)

    @property
    def status(self) -> ProbeStatus:
        if not self.reachable:
            return ProbeStatus.UNREACHABLE
        if self.degraded:
            return ProbeStatus.DEGRADED
        return ProbeStatus.REACHABLE

    @property
    def usable(self) -> bool:
        """Whether live sync can be attempted."""
        return self.status is ProbeStatus.REACHABLE
