"""Helpers for safe debug logging.

Database URLs carry the ``auth`` query parameter, and session blobs and
OTP bookkeeping carry secrets. This module redacts them before they reach
DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from yarl import URL

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "auth",
        "authkey",
        "password",
        "passwordhash",
        "salt",
        "token",
        "idtoken",
        "accesstoken",
        "refreshtoken",
        "secret",
        "otp",
        "authorization",
        "cookie",
    }
)


def redact_url(url: str | URL) -> str:
    """Return *url* with sensitive query parameters masked."""
    parsed = URL(str(url))
    if not parsed.query:
        return str(parsed)
    masked = {k: ("<redacted>" if k.lower() in _SENSITIVE_VALUE_KEYS else v) for k, v in parsed.query.items()}
    return str(parsed.with_query(masked))


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
