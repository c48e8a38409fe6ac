"""HTTP transport for the GPS telemetry REST API with cookie management."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from http.cookies import SimpleCookie
from typing import Any, Protocol

import aiohttp

from pybustrack._constants import USER_AGENT
from pybustrack._redact import redact_for_log
from pybustrack.config import TrackerConfig
from pybustrack.exceptions import AuthError, ConnectivityError, DataFormatError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    @property
    def has_session(self) -> bool: ...

    async def get_json(
        self,
        endpoint: str,
        *,
        timeout: float | None = None,
        authenticated: bool = True,
    ) -> Any: ...

    async def post_form(
        self,
        endpoint: str,
        form: Mapping[str, str],
        *,
        timeout: float | None = None,
    ) -> Any: ...

    def clear_session(self) -> None: ...


class HttpTransport:
    """aiohttp transport that handles credentials and session cookies.

    Requests carry the session cookie once one has been established via
    :meth:`post_form` against the session endpoint, and fall back to HTTP
    basic credentials otherwise.
    """

    def __init__(self, config: TrackerConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._cookies: dict[str, str] = {}
        self._cookie_header: str = ""

    @property
    def has_session(self) -> bool:
        return bool(self._cookie_header)

    def clear_session(self) -> None:
        self._cookies.clear()
        self._cookie_header = ""

    def _update_cookies(self, headers: Any) -> None:
        """Extract Set-Cookie headers and store them."""
        raw_cookies = headers.getall("Set-Cookie", [])
        changed = False
        for raw in raw_cookies:
            cookie: SimpleCookie = SimpleCookie()
            cookie.load(raw)
            for key, morsel in cookie.items():
                value = morsel.value
                if self._cookies.get(key) != value:
                    self._cookies[key] = value
                    changed = True

        if changed:
            self._cookie_header = "; ".join(f"{k}={v}" for k, v in self._cookies.items())

    def _build_auth(self, headers: dict[str, str]) -> aiohttp.BasicAuth | None:
        if self._cookie_header:
            headers["cookie"] = self._cookie_header
            return None
        if self._config.username:
            return aiohttp.BasicAuth(self._config.username, self._config.password)
        return None

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        timeout: float | None,
        authenticated: bool,
        form: Mapping[str, str] | None = None,
    ) -> Any:
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        auth = self._build_auth(headers) if authenticated else None
        url = f"{self._config.base_url.rstrip('/')}{endpoint}"
        effective_timeout = timeout if timeout is not None else self._config.effective_fetch_timeout

        _logger.debug("%s %s headers=%s", method, url, redact_for_log(headers))

        try:
            async with self._http.request(
                method,
                url,
                data=dict(form) if form is not None else None,
                headers=headers,
                auth=auth,
                timeout=aiohttp.ClientTimeout(total=effective_timeout),
            ) as resp:
                self._update_cookies(resp.headers)
                text = await resp.text()
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ConnectivityError(
                f"Request to {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc

        if status == 401:
            raise AuthError(
                f"Credentials rejected by {endpoint}",
                status_code=status,
                endpoint=endpoint,
            )
        if not 200 <= status < 300:
            raise ConnectivityError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DataFormatError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("%s %s -> HTTP %d %s", method, endpoint, status, redact_for_log(payload, max_string=200))
        return payload

    async def get_json(
        self,
        endpoint: str,
        *,
        timeout: float | None = None,
        authenticated: bool = True,
    ) -> Any:
        """GET *endpoint* and return the decoded JSON body."""
        return await self._request("GET", endpoint, timeout=timeout, authenticated=authenticated)

    async def post_form(
        self,
        endpoint: str,
        form: Mapping[str, str],
        *,
        timeout: float | None = None,
    ) -> Any:
        """POST a form-encoded body to *endpoint* and return the decoded JSON body."""
        return await self._request("POST", endpoint, timeout=timeout, authenticated=False, form=form)
