"""Notification model."""

from __future__ import annotations

from fleetsync.models._base import Entity, Timestamp


class Notification(Entity):
    """A dashboard notification (``notifications``)."""

    title: str | None = None
    message: str | None = None
    type: str | None = None
    read: bool = False
    timestamp: Timestamp = None


class VerificationLog(Entity):
    """Audit entry for a phone or document verification (``verifications``)."""

    phone_number: str | None = None
    status: str | None = None
    method: str | None = None
    timestamp: Timestamp = None
