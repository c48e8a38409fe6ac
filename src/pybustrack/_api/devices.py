"""Device list endpoint."""

from __future__ import annotations

from pydantic import TypeAdapter

from pybustrack._api._common import parse_list_payload
from pybustrack._constants import DEVICES_ENDPOINT
from pybustrack._transport import Transport
from pybustrack.models.device import Device

_DEVICE_LIST = TypeAdapter(list[Device])


async def fetch_devices(transport: Transport, *, timeout: float | None = None) -> list[Device]:
    """Fetch and parse every device visible to the account."""
    payload = await transport.get_json(DEVICES_ENDPOINT, timeout=timeout)
    return parse_list_payload(DEVICES_ENDPOINT, payload, _DEVICE_LIST)
