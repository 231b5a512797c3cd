"""Client configuration for fleetsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from fleetsync._constants import MEMORY_URL
from fleetsync.exceptions import FleetConfigError


def _env_float(env_key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise FleetConfigError(f"{env_key} must be a number, got {value!r}") from exc


def _env_int(env_key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise FleetConfigError(f"{env_key} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Client configuration.

    Parameters
    ----------
    database_url : str
        Base URL of the realtime database (e.g.
        ``"https://my-fleet-default-rtdb.firebaseio.com"``). The special value
        ``"memory://"`` selects the in-process backend.
    auth_token : str or None
        Database secret or ID token sent as the ``auth`` query parameter.
    request_timeout : float
        Upper bound in seconds for create/update/delete/read calls. The
        hosted transport does not bound itself.
    stream_read_timeout : float
        Seconds without any stream traffic (the server sends keep-alives
        every ~30 s) before a subscription is considered dropped.
    stream_retry_delay : float
        Seconds to wait before reconnecting a dropped subscription. ``0``
        disables reconnection.
    retry_attempts : int
        Extra attempts for timeouts and transient write failures. The
        dashboard never retried, so the default is ``0``.
    retry_backoff : float
        Base delay in seconds; attempt *n* waits ``retry_backoff * 2**n``.
    durable_session_ttl : float
        Expiry window in seconds for "remember me" sessions.
    tab_session_ttl : float
        Expiry window in seconds for tab-scoped sessions.
    session_file : str or None
        JSON file backing the durable session tier. ``None`` keeps it in
        memory.
    otp_cooldown : float
        Minimum seconds between OTP requests for one phone number.
    otp_max_per_hour : int
        OTP requests allowed per phone number within a rolling hour.
    """

    database_url: str = MEMORY_URL
    auth_token: str | None = None
    request_timeout: float = 20.0
    stream_read_timeout: float = 90.0
    stream_retry_delay: float = 5.0
    retry_attempts: int = 0
    retry_backoff: float = 0.5
    durable_session_ttl: float = 24 * 3600
    tab_session_ttl: float = 8 * 3600
    session_file: str | None = None
    otp_cooldown: float = 60.0
    otp_max_per_hour: int = 5

    def __post_init__(self) -> None:
        if not self.database_url:
            raise FleetConfigError("database_url must be set")
        if self.request_timeout <= 0:
            raise FleetConfigError("request_timeout must be positive")
        if self.retry_attempts < 0:
            raise FleetConfigError("retry_attempts must be >= 0")

    @property
    def is_memory(self) -> bool:
        """Whether the in-process backend is selected."""
        return self.database_url.startswith(MEMORY_URL)

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from ``FLEET_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "FLEET_DATABASE_URL": "database_url",
            "FLEET_AUTH_TOKEN": "auth_token",
            "FLEET_SESSION_FILE": "session_file",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "FLEET_REQUEST_TIMEOUT": "request_timeout",
            "FLEET_STREAM_READ_TIMEOUT": "stream_read_timeout",
            "FLEET_STREAM_RETRY_DELAY": "stream_retry_delay",
            "FLEET_RETRY_BACKOFF": "retry_backoff",
            "FLEET_OTP_COOLDOWN": "otp_cooldown",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_float(env_key, val)

        _ENV_INT_MAP = {
            "FLEET_RETRY_ATTEMPTS": "retry_attempts",
            "FLEET_OTP_MAX_PER_HOUR": "otp_max_per_hour",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_int(env_key, val)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
