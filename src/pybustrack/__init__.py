"""pybustrack - Fleet telemetry sync core for live bus tracking."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pybustrack")
except PackageNotFoundError:
    __version__ = "0+local"
from pybustrack.catalog import InMemoryRouteCatalog, RouteCatalog
from pybustrack.client import TelemetryClient
from pybustrack.config import TrackerConfig
from pybustrack.distribution import BusFilter, DistributionHub, Subscription
from pybustrack.exceptions import (
    AuthError,
    BusTrackError,
    ConnectivityError,
    DataFormatError,
    PersistenceError,
    TelemetryError,
    TrackerConfigError,
)
from pybustrack.models import (
    BusInfo,
    BusLocation,
    BusStatus,
    CatalogRoute,
    ConnectionProbe,
    Device,
    DeviceStatus,
    DriverInfo,
    PositionReport,
    ProbeStatus,
    RouteAggregate,
    RouteInfo,
)
from pybustrack.service import BusTrackingService
from pybustrack.state.store import DocumentStore, MemoryDocumentStore
from pybustrack.sync.engine import SyncEngine
from pybustrack.sync.mode import SyncMode

__all__ = [
    "__version__",
    "AuthError",
    "BusFilter",
    "BusInfo",
    "BusLocation",
    "BusStatus",
    "BusTrackError",
    "BusTrackingService",
    "CatalogRoute",
    "ConnectionProbe",
    "ConnectivityError",
    "DataFormatError",
    "Device",
    "DeviceStatus",
    "DistributionHub",
    "DocumentStore",
    "DriverInfo",
    "InMemoryRouteCatalog",
    "MemoryDocumentStore",
    "PersistenceError",
    "PositionReport",
    "ProbeStatus",
    "RouteAggregate",
    "RouteCatalog",
    "RouteInfo",
    "Subscription",
    "SyncEngine",
    "SyncMode",
    "TelemetryClient",
    "TelemetryError",
    "TrackerConfig",
    "TrackerConfigError",
]
