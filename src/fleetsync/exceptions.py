"""Custom exception hierarchy for fleetsync."""

from __future__ import annotations


class FleetError(Exception):
    """Base exception for all fleetsync errors."""


class FleetConfigError(FleetError):
    """Invalid or missing configuration."""


class RemoteStoreError(FleetError):
    """Failure talking to the hosted realtime database."""

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        status_code: int | None = None,
    ) -> None:
        self.path = path
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        """Whether a retry could plausibly succeed (no HTTP status or 5xx)."""
        return self.status_code is None or self.status_code >= 500


class RemoteWriteError(RemoteStoreError):
    """Create/update/delete rejected (network failure, permission denial, missing entity)."""


class RemoteReadError(RemoteStoreError):
    """One-shot read failed."""


class RemoteTimeoutError(RemoteStoreError):
    """Remote operation did not complete within the configured timeout.

    Deliberately not a :class:`RemoteWriteError`: the write may or may not
    have been applied by the server.
    """


class SubscriptionError(RemoteStoreError):
    """Live listener failed (permission revoked, malformed data, dropped stream)."""


class ConflictError(RemoteStoreError):
    """Conditional write rejected because the stored revision changed."""


class EntityValidationError(FleetError):
    """Caller-supplied entity is invalid. Raised before any remote call."""

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)


class RateLimitError(FleetError):
    """OTP cooldown or hourly quota exceeded."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)


class AuthError(FleetError):
    """Credential mismatch or unusable session."""


class SessionExpiredError(AuthError):
    """Stored session is older than its tier's expiry window."""
