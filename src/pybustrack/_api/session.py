"""Session login endpoint."""

from __future__ import annotations

from pydantic import ValidationError

from pybustrack._constants import SESSION_ENDPOINT
from pybustrack._transport import Transport
from pybustrack.config import TrackerConfig
from pybustrack.exceptions import AuthError, DataFormatError
from pybustrack.models.user import TelemetryUser


async def open_session(config: TrackerConfig, transport: Transport) -> TelemetryUser:
    """Log in with form credentials; the transport keeps the session cookie."""
    if not config.username:
        raise AuthError("No username configured", endpoint=SESSION_ENDPOINT)
    payload = await transport.post_form(
        SESSION_ENDPOINT,
        {"email": config.username, "password": config.password},
    )
    try:
        return TelemetryUser.model_validate(payload)
    except ValidationError as exc:
        raise DataFormatError(
            f"Malformed user payload from {SESSION_ENDPOINT}",
            endpoint=SESSION_ENDPOINT,
        ) from exc
