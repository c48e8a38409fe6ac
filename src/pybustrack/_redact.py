"""Redaction of credentials and driver contact data in debug logs.

Request headers carry basic credentials or the session cookie, login forms
carry the account password, and device payloads carry driver names and
phone numbers. Anything logged from the wire goes through
:func:`redact_for_log` first.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

_REDACTED = "<redacted>"

# Compared after lower-casing and dropping "-" and "_".
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "authorization",
        "cookie",
        "setcookie",
        "jsessionid",
        "email",
        "phone",
        "contact",
    }
)
_SENSITIVE_SUFFIXES = ("password", "token", "secret")


def _is_sensitive(key: str) -> bool:
    normalized = key.lower().replace("-", "").replace("_", "")
    return normalized in _SENSITIVE_KEYS or normalized.endswith(_SENSITIVE_SUFFIXES)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}…<truncated {len(text) - limit} chars>"


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* that is safe to put in a debug log.

    Mapping values under sensitive keys are replaced, long strings are
    truncated, and nesting deeper than 20 levels is cut off. The input is
    never modified.
    """
    if _depth > 20:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _truncate(value, max_string)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if isinstance(value, Mapping):
        return {
            str(key): _REDACTED
            if _is_sensitive(str(key))
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, (Sequence, set, frozenset)):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]
    return _truncate(repr(value), max_string)
