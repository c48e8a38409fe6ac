"""Route catalog entries and per-route aggregates."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pybustrack.models._base import DocumentModel, DocumentTimestamp
from pybustrack.models.bus import OperatingHours, RouteInfo


class CatalogRoute(BaseModel):
    """A route as published by the route catalog."""

    model_config = ConfigDict(frozen=True)

    id: str
    route_no: str
    start: str
    destination: str
    name: str | None = None
    distance: float | None = None
    estimated_duration: int | None = None
    fare: float | None = None
    operating_hours: OperatingHours | None = None
    active_buses: int = 0
    total_buses: int = 0

    def to_route_info(self) -> RouteInfo:
        return RouteInfo(
            route_name=self.name or f"{self.start} - {self.destination}",
            start_location=self.start,
            end_location=self.destination,
            distance=self.distance,
            estimated_duration=self.estimated_duration,
            fare=self.fare,
            operating_hours=self.operating_hours,
        )


class RouteAggregate(DocumentModel):
    """Per-route rollup computed from one sync tick's bus locations."""

    id: str
    route_number: str
    route_name: str
    start_location: str = "Unknown"
    end_location: str = "Unknown"
    active_buses: int = Field(ge=0)
    total_buses: int = Field(ge=0)
    average_speed: float = Field(ge=0.0)
    last_update: DocumentTimestamp
    is_live_data: bool = True

    @model_validator(mode="after")
    def _active_within_total(self) -> RouteAggregate:
        if self.active_buses > self.total_buses:
            raise ValueError(f"active_buses ({self.active_buses}) exceeds total_buses ({self.total_buses})")
        return self
