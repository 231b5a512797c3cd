"""Data models for fleet entities."""

from fleetsync.models._base import (
    Entity,
    FleetBaseModel,
    FlexFloat,
    FlexInt,
    Timestamp,
    iso_timestamp,
    parse_timestamp,
)
from fleetsync.models.billing import Contract, Customer, Invoice
from fleetsync.models.fuel import FuelPurchase, FuelRecord
from fleetsync.models.maintenance import (
    MaintenanceScheduleItem,
    MaintenanceStatus,
    Part,
    ServiceHistoryItem,
    StockStatus,
)
from fleetsync.models.notification import Notification, VerificationLog
from fleetsync.models.trip import Trip
from fleetsync.models.vehicle import TransportRecord, Vehicle, VehicleLocation

__all__ = [
    "Contract",
    "Customer",
    "Entity",
    "FleetBaseModel",
    "FlexFloat",
    "FlexInt",
    "FuelPurchase",
    "FuelRecord",
    "Invoice",
    "MaintenanceScheduleItem",
    "MaintenanceStatus",
    "Notification",
    "Part",
    "ServiceHistoryItem",
    "StockStatus",
    "Timestamp",
    "TransportRecord",
    "Trip",
    "Vehicle",
    "VehicleLocation",
    "VerificationLog",
    "iso_timestamp",
    "parse_timestamp",
]
