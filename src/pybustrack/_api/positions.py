"""Latest positions endpoint."""

from __future__ import annotations

from pydantic import TypeAdapter

from pybustrack._api._common import parse_list_payload
from pybustrack._constants import POSITIONS_ENDPOINT
from pybustrack._transport import Transport
from pybustrack.models.position import PositionReport

_POSITION_LIST = TypeAdapter(list[PositionReport])


async def fetch_positions(transport: Transport, *, timeout: float | None = None) -> list[PositionReport]:
    """Fetch and parse the current position fixes.

    The server may return more than one fix per device; callers are
    responsible for picking the latest one.
    """
    payload = await transport.get_json(POSITIONS_ENDPOINT, timeout=timeout)
    return parse_list_payload(POSITIONS_ENDPOINT, payload, _POSITION_LIST)
