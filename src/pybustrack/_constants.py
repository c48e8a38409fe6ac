"""Internal constants shared across the library."""

DEFAULT_BASE_URL = "http://localhost:8082"
USER_AGENT = "pybustrack/1.0"

SERVER_ENDPOINT = "/api/server"
SESSION_ENDPOINT = "/api/session"
DEVICES_ENDPOINT = "/api/devices"
POSITIONS_ENDPOINT = "/api/positions"

#: Hard ceiling on the number of writes the shared store accepts per commit.
MAX_WRITE_BATCH = 500

#: Route number used when neither the identifier nor the name carries one.
UNKNOWN_ROUTE = "Unknown"

#: Ids of simulated vehicles start with this prefix.
SIMULATED_ID_PREFIX = "mock_"

# ------------------------------------------------------------------
# Bus defaults applied when the telemetry source has no vehicle info
# ------------------------------------------------------------------

DEFAULT_BUS_CAPACITY = 50
DEFAULT_BUS_TYPE = "Standard Bus"
DEFAULT_BUS_MODEL = "Unknown"

# ------------------------------------------------------------------
# Route catalog tariff (LKR) and timing
# ------------------------------------------------------------------

BASE_FARE = 15.0
BASE_FARE_DISTANCE_KM = 8.0
FARE_PER_KM = 2.5
AVERAGE_ROUTE_SPEED_KMH = 40.0
DEFAULT_OPERATING_START = "05:30"
DEFAULT_OPERATING_END = "23:00"


def fare_for_distance(distance_km: float) -> int:
    """Return the rounded fare for a route of *distance_km*.

    Flat :data:`BASE_FARE` up to :data:`BASE_FARE_DISTANCE_KM`, then
    :data:`FARE_PER_KM` for every additional kilometre.
    """
    if distance_km < 0:
        raise ValueError(f"distance must be non-negative, got {distance_km}")
    if distance_km <= BASE_FARE_DISTANCE_KM:
        return int(round(BASE_FARE))
    return int(round(BASE_FARE + (distance_km - BASE_FARE_DISTANCE_KM) * FARE_PER_KM))


def duration_for_distance(distance_km: float) -> int:
    """Estimated travel time in whole minutes at :data:`AVERAGE_ROUTE_SPEED_KMH`."""
    if distance_km < 0:
        raise ValueError(f"distance must be non-negative, got {distance_km}")
    return int(distance_km / AVERAGE_ROUTE_SPEED_KMH * 60)
