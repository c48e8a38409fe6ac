"""High-level async client for the GPS telemetry service."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp

from pybustrack._api import devices as _devices_api
from pybustrack._api import positions as _positions_api
from pybustrack._api import server as _server_api
from pybustrack._api.session import open_session
from pybustrack._transport import HttpTransport, Transport
from pybustrack.config import TrackerConfig
from pybustrack.exceptions import AuthError, BusTrackError
from pybustrack.models.device import Device
from pybustrack.models.position import PositionReport
from pybustrack.models.probe import ConnectionProbe
from pybustrack.models.user import TelemetryUser
from pybustrack.session import Session

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class TelemetryClient:
    """Async client for the telemetry REST API.

    Usage::

        async with TelemetryClient(config) as client:
            probe = await client.test_connection()
            devices = await client.get_devices()

    All read methods are side-effect free and safe to run concurrently.
    """

    def __init__(
        self,
        config: TrackerConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport
        self._injected_transport = transport is not None
        self._session: Session | None = None
        self._user: TelemetryUser | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TelemetryClient:
        if self._injected_transport:
            return self
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = HttpTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._injected_transport:
            self._transport = None
        self._session = None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @property
    def user(self) -> TelemetryUser | None:
        """The acting user, once :meth:`authenticate` succeeded."""
        return self._user

    async def authenticate(self) -> TelemetryUser:
        """Establish a session with the telemetry server.

        Raises :class:`AuthError` when the credentials are rejected.
        """
        transport = self._require_transport()
        user = await open_session(self._config, transport)
        self._user = user
        self._session = Session(user_id=user.id, email=user.email, ttl=self._config.session_ttl)
        _logger.debug("Authenticated as user id=%s", user.id)
        return user

    async def ensure_session(self) -> None:
        """Log in when session mode is enabled and no valid session exists."""
        if not self._config.use_session:
            return
        transport = self._require_transport()
        if self._session is not None and not self._session.is_expired and transport.has_session:
            return
        transport.clear_session()
        await self.authenticate()

    def invalidate_session(self) -> None:
        """Force session invalidation (next call will re-authenticate)."""
        self._session = None
        if self._transport is not None:
            self._transport.clear_session()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise BusTrackError("Client not initialized. Use 'async with TelemetryClient(...) as client:'")
        return self._transport

    async def _call_with_reauth(self, fn: Callable[[Transport], Awaitable[T]]) -> T:
        """Run an API call, re-authenticating once if a session was rejected."""
        await self.ensure_session()
        transport = self._require_transport()
        try:
            return await fn(transport)
        except AuthError:
            if not self._config.use_session:
                raise
            _logger.debug("Session rejected; re-authenticating")
            self.invalidate_session()
            await self.ensure_session()
            return await fn(transport)

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------

    async def test_connection(self, timeout: float | None = None) -> ConnectionProbe:
        """Bounded health probe; never raises."""
        effective_timeout = timeout if timeout is not None else self._config.health_timeout
        try:
            transport = self._require_transport()
        except BusTrackError as exc:
            return ConnectionProbe(reachable=False, message=str(exc))
        return await _server_api.probe_server(transport, timeout=effective_timeout)

    async def get_devices(self) -> list[Device]:
        """Fetch the full device list."""
        return await self._call_with_reauth(
            lambda transport: _devices_api.fetch_devices(transport, timeout=self._config.effective_fetch_timeout)
        )

    async def get_positions(self) -> list[PositionReport]:
        """Fetch the current position list."""
        return await self._call_with_reauth(
            lambda transport: _positions_api.fetch_positions(transport, timeout=self._config.effective_fetch_timeout)
        )
