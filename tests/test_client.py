from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as AiohttpTestServer
from fakes import FakeTelemetryBackend, device_payload, position_payload

from pybustrack.client import TelemetryClient
from pybustrack.config import TrackerConfig
from pybustrack.exceptions import AuthError, BusTrackError, ConnectivityError, DataFormatError
from pybustrack.models.probe import ProbeStatus

_USERNAME = "ops@example.com"
_PASSWORD = "secret"
_BASIC = aiohttp.BasicAuth(_USERNAME, _PASSWORD).encode()


@dataclass
class ServerState:
    server_status: int = 200
    devices_status: int = 200
    devices_body: str | None = None
    expire_next: bool = False
    logins: int = 0
    sessions: set[str] = field(default_factory=set)
    auth_headers: list[str | None] = field(default_factory=list)


def _telemetry_app(state: ServerState) -> web.Application:
    def authorized(request: web.Request) -> bool:
        token = request.cookies.get("JSESSIONID")
        if token in state.sessions:
            if state.expire_next:
                state.expire_next = False
                state.sessions.clear()
                return False
            return True
        return request.headers.get("Authorization") == _BASIC

    async def server_info(request: web.Request) -> web.Response:
        if state.server_status != 200:
            return web.Response(status=state.server_status, text="maintenance")
        return web.json_response({"version": "6.5", "registration": False})

    async def devices(request: web.Request) -> web.Response:
        state.auth_headers.append(request.headers.get("Authorization"))
        if not authorized(request):
            return web.Response(status=401)
        if state.devices_status != 200:
            return web.Response(status=state.devices_status, text="boom")
        if state.devices_body is not None:
            return web.Response(text=state.devices_body, content_type="application/json")
        return web.json_response([device_payload(1, "138-007"), device_payload(2, "177-001")])

    async def positions(request: web.Request) -> web.Response:
        if not authorized(request):
            return web.Response(status=401)
        return web.json_response([position_payload(1), position_payload(2)])

    async def session(request: web.Request) -> web.Response:
        form = await request.post()
        if form.get("email") != _USERNAME or form.get("password") != _PASSWORD:
            return web.Response(status=401)
        state.logins += 1
        token = f"session-{state.logins}"
        state.sessions.add(token)
        response = web.json_response({"id": 7, "name": "Operator", "email": _USERNAME})
        response.set_cookie("JSESSIONID", token)
        return response

    app = web.Application()
    app.router.add_get("/api/server", server_info)
    app.router.add_get("/api/devices", devices)
    app.router.add_get("/api/positions", positions)
    app.router.add_post("/api/session", session)
    return app


@contextlib.asynccontextmanager
async def telemetry_server(state: ServerState) -> AsyncIterator[str]:
    async with AiohttpTestServer(_telemetry_app(state)) as server:
        yield f"http://{server.host}:{server.port}"


def _config(base_url: str, **overrides: object) -> TrackerConfig:
    values: dict[str, object] = {
        "base_url": base_url,
        "username": _USERNAME,
        "password": _PASSWORD,
        "health_timeout": 2.0,
        "fetch_timeout": 2.0,
    }
    values.update(overrides)
    return TrackerConfig(**values)  # type: ignore[arg-type]


# ------------------------------------------------------------------
# Health check
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_probe_reachable() -> None:
    async with telemetry_server(ServerState()) as url, TelemetryClient(_config(url)) as client:
        probe = await client.test_connection()

    assert probe.status is ProbeStatus.REACHABLE
    assert probe.version == "6.5"
    assert probe.usable is True


@pytest.mark.asyncio
async def test_probe_degraded_on_error_status() -> None:
    async with telemetry_server(ServerState(server_status=503)) as url, TelemetryClient(_config(url)) as client:
        probe = await client.test_connection()

    assert probe.status is ProbeStatus.DEGRADED
    assert "503" in probe.message


@pytest.mark.asyncio
async def test_probe_unreachable() -> None:
    async with TelemetryClient(_config("http://127.0.0.1:1", health_timeout=1.0)) as client:
        probe = await client.test_connection()

    assert probe.status is ProbeStatus.UNREACHABLE


@pytest.mark.asyncio
async def test_uninitialized_client() -> None:
    client = TelemetryClient(_config("http://127.0.0.1:1"))

    probe = await client.test_connection()
    assert probe.status is ProbeStatus.UNREACHABLE

    with pytest.raises(BusTrackError, match="not initialized"):
        await client.get_devices()


# ------------------------------------------------------------------
# Basic credentials
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fetch_devices_and_positions_with_basic_auth() -> None:
    state = ServerState()
    async with telemetry_server(state) as url, TelemetryClient(_config(url)) as client:
        devices = await client.get_devices()
        positions = await client.get_positions()

    assert [device.unique_id for device in devices] == ["138-007", "177-001"]
    assert [position.device_id for position in positions] == [1, 2]
    assert state.auth_headers == [_BASIC]
    assert state.logins == 0


@pytest.mark.asyncio
async def test_rejected_credentials() -> None:
    async with telemetry_server(ServerState()) as url, TelemetryClient(_config(url, password="wrong")) as client:
        with pytest.raises(AuthError) as excinfo:
            await client.get_devices()

    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_server_error_is_connectivity_error() -> None:
    async with telemetry_server(ServerState(devices_status=500)) as url, TelemetryClient(_config(url)) as client:
        with pytest.raises(ConnectivityError) as excinfo:
            await client.get_devices()

    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["<html>oops</html>", '{"devices": []}', '[{"id": 1}]'])
async def test_unusable_payload_is_data_format_error(body: str) -> None:
    async with telemetry_server(ServerState(devices_body=body)) as url, TelemetryClient(_config(url)) as client:
        with pytest.raises(DataFormatError):
            await client.get_devices()


# ------------------------------------------------------------------
# Session login
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_session_cookie_replaces_basic_auth() -> None:
    state = ServerState()
    async with telemetry_server(state) as url, TelemetryClient(_config(url, use_session=True)) as client:
        devices = await client.get_devices()
        await client.get_devices()

        assert client.user is not None
        assert client.user.id == 7

    assert len(devices) == 2
    assert state.logins == 1
    assert state.auth_headers == [None, None]


@pytest.mark.asyncio
async def test_expired_session_is_renewed_once() -> None:
    state = ServerState()
    async with telemetry_server(state) as url, TelemetryClient(_config(url, use_session=True)) as client:
        await client.get_devices()
        state.expire_next = True

        devices = await client.get_devices()

    assert len(devices) == 2
    assert state.logins == 2


@pytest.mark.asyncio
async def test_session_login_rejected() -> None:
    async with telemetry_server(ServerState()) as url:
        config = _config(url, use_session=True, password="wrong")
        async with TelemetryClient(config) as client:
            with pytest.raises(AuthError):
                await client.authenticate()
            assert client.user is None


@pytest.mark.asyncio
async def test_probe_is_bounded_even_if_transport_hangs() -> None:
    class HangingTransport(FakeTelemetryBackend):
        async def get_json(self, endpoint: str, *, timeout: float | None = None, authenticated: bool = True) -> Any:
            await asyncio.Event().wait()

    client = TelemetryClient(_config("http://127.0.0.1:1"), transport=HangingTransport())
    probe = await client.test_connection(timeout=0.05)

    assert probe.status is ProbeStatus.UNREACHABLE
    assert "0s" in probe.message
