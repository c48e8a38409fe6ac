"""Custom exception hierarchy for pybustrack."""

from __future__ import annotations


class BusTrackError(Exception):
    """Base exception for all pybustrack errors."""


class TrackerConfigError(BusTrackError):
    """Invalid or missing configuration."""


class TelemetryError(BusTrackError):
    """Failure while talking to the GPS telemetry service."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ConnectivityError(TelemetryError):
    """Network unreachable, timeout, or a non-success HTTP status.

    ``status_code`` is ``None`` when no HTTP response was received at all,
    which is how the health check tells "unreachable" apart from
    "reachable but degraded".
    """


class AuthError(TelemetryError):
    """Credentials rejected by the telemetry service (HTTP 401)."""


class DataFormatError(TelemetryError):
    """Payload could not be decoded or does not match the expected shape."""


class PersistenceError(BusTrackError):
    """Write to the shared document store failed."""

    def __init__(self, message: str, *, collection: str = "") -> None:
        self.collection = collection
        super().__init__(message)
