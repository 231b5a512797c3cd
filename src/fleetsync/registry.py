"""Registry of the collections stored in the realtime database.

Each collection declares the id prefix used when a caller does not supply
an id, the model used to validate new entities, and the defaults the
dashboard applied when creating or updating records.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fleetsync import _constants as c
from fleetsync.models import (
    Contract,
    Customer,
    Entity,
    FuelPurchase,
    FuelRecord,
    Invoice,
    MaintenanceScheduleItem,
    MaintenanceStatus,
    Notification,
    Part,
    ServiceHistoryItem,
    TransportRecord,
    Trip,
    Vehicle,
    VehicleLocation,
    VerificationLog,
)
from fleetsync.stats import part_valuation

#: ``(payload, now_iso) -> payload`` applied to a new entity before it is written.
CreateHook = Callable[[dict[str, Any], str], dict[str, Any]]
#: ``(fields) -> fields`` applied to a partial update before it is written.
UpdateHook = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass(frozen=True)
class CollectionSpec:
    """Static description of one collection."""

    key: str
    id_prefix: str = ""
    model: type[Entity] | None = None
    on_create: CreateHook | None = None
    on_update: UpdateHook | None = None
    sort_field: str | None = None
    """Field to order synchronized lists by, newest first. ``None`` keeps server order."""


def _default_status(status: str) -> CreateHook:
    def hook(payload: dict[str, Any], _now: str) -> dict[str, Any]:
        if not payload.get("status"):
            payload["status"] = status
        return payload

    return hook


def _notification_defaults(payload: dict[str, Any], now: str) -> dict[str, Any]:
    payload["timestamp"] = now
    payload["read"] = False
    return payload


def _stamp_timestamp(payload: dict[str, Any], now: str) -> dict[str, Any]:
    payload["timestamp"] = now
    return payload


def _location_on_create(payload: dict[str, Any], now: str) -> dict[str, Any]:
    # Locations are keyed by the vehicle they belong to.
    payload["vehicleId"] = payload["id"]
    return _stamp_timestamp(payload, now)


def _part_on_create(payload: dict[str, Any], _now: str) -> dict[str, Any]:
    payload.update(part_valuation(payload))
    return payload


def _part_on_update(fields: dict[str, Any]) -> dict[str, Any]:
    fields.update(part_valuation(fields))
    return fields


COLLECTIONS: dict[str, CollectionSpec] = {
    spec.key: spec
    for spec in (
        CollectionSpec(c.VEHICLES, "VEH", Vehicle),
        CollectionSpec(c.TRIPS, "TRIP-", Trip),
        CollectionSpec(c.NOTIFICATIONS, "NOTIF-", Notification, on_create=_notification_defaults, sort_field="timestamp"),
        CollectionSpec(c.CUSTOMERS, "CUST-", Customer),
        CollectionSpec(c.FUEL_RECORDS, "FUEL-", FuelRecord),
        CollectionSpec(c.FUEL_PURCHASES, "FP-", FuelPurchase),
        CollectionSpec(
            c.MAINTENANCE_SCHEDULE,
            "MS",
            MaintenanceScheduleItem,
            on_create=_default_status(MaintenanceStatus.SCHEDULED),
        ),
        CollectionSpec(
            c.SERVICE_HISTORY,
            "SH",
            ServiceHistoryItem,
            on_create=_default_status(MaintenanceStatus.COMPLETED),
        ),
        CollectionSpec(c.PARTS_INVENTORY, "PI", Part, on_create=_part_on_create, on_update=_part_on_update),
        CollectionSpec(c.TRANSPORT_SYSTEM, "TRANS-", TransportRecord),
        CollectionSpec(c.TRANSPORT_HISTORY, "TH", TransportRecord),
        CollectionSpec(c.INVOICES, "INV-", Invoice),
        CollectionSpec(c.CONTRACTS, "CON-", Contract),
        CollectionSpec(c.VEHICLE_LOCATIONS, "LOC-", VehicleLocation, on_create=_location_on_create),
        CollectionSpec(c.VERIFICATIONS, "VERIFY-", VerificationLog, on_create=_stamp_timestamp, sort_field="timestamp"),
        CollectionSpec(c.OTP_ATTEMPTS),
    )
}


def get_collection(key: str) -> CollectionSpec:
    """Registered spec for *key*, or a bare untyped spec for any other path."""
    normalized = key.strip("/")
    spec = COLLECTIONS.get(normalized)
    if spec is None:
        return CollectionSpec(normalized)
    return spec
