"""Server info endpoint used as a health check."""

from __future__ import annotations

import asyncio
import logging

from pybustrack._constants import SERVER_ENDPOINT
from pybustrack._transport import Transport
from pybustrack.exceptions import BusTrackError, ConnectivityError
from pybustrack.models.probe import ConnectionProbe

_logger = logging.getLogger(__name__)


async def probe_server(transport: Transport, *, timeout: float) -> ConnectionProbe:
    """Query the server info endpoint and classify the outcome.

    Never raises: every failure is folded into the returned probe.
    """
    try:
        async with asyncio.timeout(timeout):
            info = await transport.get_json(SERVER_ENDPOINT, timeout=timeout, authenticated=False)
    except TimeoutError:
        return ConnectionProbe(reachable=False, message=f"No answer within {timeout:.0f}s")
    except ConnectivityError as exc:
        if exc.status_code is None:
            return ConnectionProbe(reachable=False, message=f"Connection failed: {exc}")
        return ConnectionProbe(
            reachable=True,
            degraded=True,
            message=f"Server responded with {exc.status_code}",
        )
    except BusTrackError as exc:
        return ConnectionProbe(reachable=True, degraded=True, message=f"Unusable server response: {exc}")
    except Exception as exc:
        _logger.warning("Health check failed unexpectedly", exc_info=True)
        return ConnectionProbe(reachable=False, message=f"Connection failed: {exc!r}")

    if not isinstance(info, dict):
        return ConnectionProbe(reachable=True, degraded=True, message="Server info is not a JSON object")

    version = info.get("version")
    version_text = str(version) if version is not None else None
    return ConnectionProbe(
        reachable=True,
        message=f"Connected to telemetry server ({version_text or 'unknown version'})",
        version=version_text,
        info=info,
    )
