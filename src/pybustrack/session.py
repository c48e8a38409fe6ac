"""Session state management for cookie-authenticated API calls."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

#: Default session time-to-live in seconds (12 hours).
#: The telemetry server does not advertise an expiry; sessions are
#: re-established proactively after this interval.
DEFAULT_SESSION_TTL: float = 12 * 3600


class Session(BaseModel):
    """Session state after a successful login.

    Parameters
    ----------
    user_id : int
        The authenticated user's id.
    email : str
        Login e-mail of the acting user.
    created_at : float
        Monotonic timestamp (``time.monotonic()``) when the session
        was created.  Defaults to *now* if not provided.
    ttl : float
        Time-to-live in seconds.  After this period the session is
        considered expired and should be refreshed via a new login.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    user_id: int
    email: str = ""
    created_at: float = Field(default_factory=time.monotonic)
    ttl: float = DEFAULT_SESSION_TTL

    @property
    def is_expired(self) -> bool:
        """Whether the session has exceeded its TTL."""
        return (time.monotonic() - self.created_at) >= self.ttl

    @property
    def age(self) -> float:
        """Seconds since the session was created."""
        return time.monotonic() - self.created_at
