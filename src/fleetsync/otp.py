"""One-time-password bookkeeping for phone verification.

Attempts per phone number are stored at ``settings/otpAttempts/<digits>``
so every dashboard instance shares the same limits. Sending the SMS is
left to the caller.
"""

from __future__ import annotations

import logging
import math
import re
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from fleetsync.exceptions import EntityValidationError, RateLimitError
from fleetsync.models._base import FleetBaseModel, FlexInt, Timestamp
from fleetsync.store import RemoteCollectionStore

_logger = logging.getLogger(__name__)

_PHONE_RE = re.compile(r"^[6-9]\d{9}$")
_WINDOW = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_phone(phone_number: str | int) -> str:
    """Digits only; the form used as the storage key."""
    return re.sub(r"\D", "", str(phone_number))


def validate_phone_number(phone_number: str | int) -> bool:
    """Ten-digit Indian mobile number starting with 6-9."""
    return bool(_PHONE_RE.match(str(phone_number)))


def format_phone_number(phone_number: str | int) -> str:
    text = str(phone_number)
    if len(text) == 10:
        return f"+91 {text[:5]} {text[5:]}"
    return text


def generate_otp(length: int = 6) -> str:
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice("0123456789") for _ in range(length))


class OtpAttempts(FleetBaseModel):
    count: FlexInt = 0
    last_attempt: Timestamp = None
    window_start: Timestamp = None


class OtpRateLimiter:
    """Cooldown and hourly quota per phone number.

    Parameters
    ----------
    store : RemoteCollectionStore
        Store bound to ``settings/otpAttempts``.
    cooldown : float
        Seconds required between two requests for the same number.
    max_per_hour : int
        Requests allowed within one hour of the first request of a window.
    """

    def __init__(
        self,
        store: RemoteCollectionStore,
        *,
        cooldown: float = 60.0,
        max_per_hour: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._cooldown = timedelta(seconds=cooldown)
        self._max_per_hour = max_per_hour
        self._clock = clock

    def _key(self, phone_number: str | int) -> str:
        digits = normalize_phone(phone_number)
        if not digits:
            raise EntityValidationError("phone number has no digits", field="phoneNumber")
        return digits

    async def attempts(self, phone_number: str | int) -> OtpAttempts:
        record = await self._store.read(self._key(phone_number))
        if record is None:
            return OtpAttempts()
        return OtpAttempts.model_validate(record)

    async def check(self, phone_number: str | int) -> None:
        """Raise :class:`RateLimitError` if another OTP may not be sent yet."""
        attempts = await self.attempts(phone_number)
        now = self._clock()
        if attempts.last_attempt is not None:
            elapsed = now - attempts.last_attempt
            if elapsed < self._cooldown:
                remaining = (self._cooldown - elapsed).total_seconds()
                raise RateLimitError(
                    f"Please wait {math.ceil(remaining)} seconds before requesting another OTP",
                    retry_after=remaining,
                )
        window_start = attempts.window_start or attempts.last_attempt
        if (
            window_start is not None
            and now - window_start < _WINDOW
            and (attempts.count or 0) >= self._max_per_hour
        ):
            raise RateLimitError(
                "Too many OTP requests. Please try again after 1 hour.",
                retry_after=(_WINDOW - (now - window_start)).total_seconds(),
            )

    async def record_attempt(self, phone_number: str | int) -> OtpAttempts:
        """Count one sent OTP, opening a new hourly window when the last one lapsed."""
        key = self._key(phone_number)
        attempts = await self.attempts(key)
        now = self._clock()
        window_start = attempts.window_start or attempts.last_attempt
        if window_start is None or now - window_start >= _WINDOW:
            updated = OtpAttempts(count=1, last_attempt=now, window_start=now)
        else:
            updated = OtpAttempts(count=(attempts.count or 0) + 1, last_attempt=now, window_start=window_start)
        await self._store.create({"id": key, **updated.to_record()})
        _logger.debug("OTP attempt %d for %s", updated.count, key[-4:])
        return updated

    async def acquire(self, phone_number: str | int) -> OtpAttempts:
        """:meth:`check` then :meth:`record_attempt`."""
        await self.check(phone_number)
        return await self.record_attempt(phone_number)
