"""Client and sync-engine configuration for pybustrack."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable
from typing import Any

from pybustrack._constants import DEFAULT_BASE_URL, MAX_WRITE_BATCH
from pybustrack.exceptions import TrackerConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _optional(parse: Callable[[str], Any]) -> Callable[[str], Any]:
    """Wrap *parse* so that ``""``/``"none"``/``"off"`` map to ``None``."""

    def _inner(value: str) -> Any:
        if value.strip().lower() in {"", "none", "off", "disabled"}:
            return None
        return parse(value)

    return _inner


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Configuration shared by the telemetry client and the sync engine.

    Parameters
    ----------
    base_url : str
        Root URL of the GPS telemetry server (``/api/...`` is appended).
    username : str
        Account e-mail used for basic credentials and session login.
    password : str
        Account password.
    use_session : bool
        Log in via ``POST /api/session`` and send the session cookie
        instead of basic credentials on every request.
    session_ttl : float
        Seconds before a session is considered stale and re-established.
    sync_interval : float
        Seconds between live sync ticks.
    retry_delay : float
        Seconds before a one-shot retry after a failed tick.
    max_retries : int
        Consecutive failures after which the retry counter resets.
    health_timeout : float
        Upper bound in seconds for the connection health check.
    fetch_timeout : float or None
        Per-request bound for device/position fetches. ``None`` means
        "same as ``sync_interval``".
    demo_interval : float
        Seconds between simulation steps in demo mode.
    recovery_interval : float or None
        Seconds between live-recovery probes while in demo mode.
        ``None`` disables automatic recovery.
    demo_fallback_after : int or None
        Consecutive failed live ticks after which the engine downgrades to
        demo mode. ``None`` keeps the engine live regardless of failures.
    stale_after : float
        Age in seconds after which a position fix marks the bus offline.
    all_buses_limit : int
        Maximum number of buses delivered to "all buses" subscribers.
    write_batch_limit : int
        Maximum writes per store commit (never above the store ceiling).
    simulation_seed : int or None
        Seed for the demo fleet random generator.
    """

    base_url: str = DEFAULT_BASE_URL
    username: str = ""
    password: str = ""
    use_session: bool = False
    session_ttl: float = 12 * 3600
    sync_interval: float = 10.0
    retry_delay: float = 30.0
    max_retries: int = 5
    health_timeout: float = 10.0
    fetch_timeout: float | None = None
    demo_interval: float = 5.0
    recovery_interval: float | None = 60.0
    demo_fallback_after: int | None = None
    stale_after: float = 10 * 60
    all_buses_limit: int = 100
    write_batch_limit: int = MAX_WRITE_BATCH
    simulation_seed: int | None = 138

    def __post_init__(self) -> None:
        for name in ("sync_interval", "retry_delay", "health_timeout", "demo_interval", "stale_after"):
            if getattr(self, name) <= 0:
                raise TrackerConfigError(f"{name} must be positive, got {getattr(self, name)!r}")
        if self.fetch_timeout is not None and self.fetch_timeout <= 0:
            raise TrackerConfigError(f"fetch_timeout must be positive, got {self.fetch_timeout!r}")
        if self.recovery_interval is not None and self.recovery_interval <= 0:
            raise TrackerConfigError(f"recovery_interval must be positive, got {self.recovery_interval!r}")
        if self.max_retries < 1:
            raise TrackerConfigError(f"max_retries must be at least 1, got {self.max_retries!r}")
        if self.demo_fallback_after is not None and self.demo_fallback_after < 1:
            raise TrackerConfigError(f"demo_fallback_after must be at least 1, got {self.demo_fallback_after!r}")
        if not 1 <= self.write_batch_limit <= MAX_WRITE_BATCH:
            raise TrackerConfigError(
                f"write_batch_limit must be between 1 and {MAX_WRITE_BATCH}, got {self.write_batch_limit!r}"
            )
        if self.all_buses_limit < 1:
            raise TrackerConfigError(f"all_buses_limit must be at least 1, got {self.all_buses_limit!r}")
        if not self.base_url.startswith(("http://", "https://")):
            raise TrackerConfigError(f"base_url must be an http(s) URL, got {self.base_url!r}")

    @property
    def effective_fetch_timeout(self) -> float:
        """Bound applied to each regular fetch inside a sync tick."""
        return self.fetch_timeout if self.fetch_timeout is not None else self.sync_interval

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads ``BUSTRACK_URL``, ``BUSTRACK_USERNAME``, ``BUSTRACK_PASSWORD``
        and the optional tuning variables listed below. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP: dict[str, tuple[str, Callable[[str], Any]]] = {
            "BUSTRACK_URL": ("base_url", str),
            "BUSTRACK_USERNAME": ("username", str),
            "BUSTRACK_PASSWORD": ("password", str),
            "BUSTRACK_SESSION_TTL": ("session_ttl", float),
            "BUSTRACK_SYNC_INTERVAL": ("sync_interval", float),
            "BUSTRACK_RETRY_DELAY": ("retry_delay", float),
            "BUSTRACK_MAX_RETRIES": ("max_retries", int),
            "BUSTRACK_HEALTH_TIMEOUT": ("health_timeout", float),
            "BUSTRACK_FETCH_TIMEOUT": ("fetch_timeout", _optional(float)),
            "BUSTRACK_DEMO_INTERVAL": ("demo_interval", float),
            "BUSTRACK_RECOVERY_INTERVAL": ("recovery_interval", _optional(float)),
            "BUSTRACK_DEMO_FALLBACK_AFTER": ("demo_fallback_after", _optional(int)),
            "BUSTRACK_STALE_AFTER": ("stale_after", float),
            "BUSTRACK_ALL_BUSES_LIMIT": ("all_buses_limit", int),
            "BUSTRACK_SIMULATION_SEED": ("simulation_seed", _optional(int)),
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, parse) in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = parse(val)
            except ValueError as exc:
                raise TrackerConfigError(f"Invalid value for {env_key}: {val!r}") from exc

        if "use_session" not in overrides:
            config_kwargs["use_session"] = _env_bool(env.get("BUSTRACK_USE_SESSION"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
