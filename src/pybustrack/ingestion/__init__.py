"""Ingestion layer.

This package turns raw telemetry snapshots (devices + position fixes) into
enriched :class:`pybustrack.models.bus.BusLocation` records.
"""

__all__: list[str] = []
