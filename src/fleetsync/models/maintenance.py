"""Maintenance schedule, service history and parts inventory models."""

from __future__ import annotations

from enum import StrEnum

from fleetsync.models._base import Entity, FlexFloat


class MaintenanceStatus(StrEnum):
    SCHEDULED = "Scheduled"
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class StockStatus(StrEnum):
    CRITICAL = "Critical Stock"
    LOW = "Low Stock"
    IN_STOCK = "In Stock"


class MaintenanceScheduleItem(Entity):
    """A planned maintenance job (``maintenanceSchedule``)."""

    vehicle_id: str
    vehicle_name: str | None = None
    service_type: str
    maintenance_type: str | None = None
    scheduled_date: str | None = None
    scheduled_time: str | None = None
    estimated_cost: FlexFloat = None
    estimated_duration: str | None = None
    priority: str | None = None
    status: str = MaintenanceStatus.SCHEDULED
    assigned_technician: str | None = None
    service_center: str | None = None
    service_contact: str | None = None
    description: str | None = None
    notes: str | None = None


class ServiceHistoryItem(Entity):
    """A completed service visit (``serviceHistory``)."""

    vehicle_id: str
    vehicle_name: str | None = None
    service_type: str | None = None
    service_date: str | None = None
    service_center: str | None = None
    technician: str | None = None
    cost: FlexFloat = None
    duration: str | None = None
    km_reading: FlexFloat = None
    rating: FlexFloat = None
    feedback: str | None = None
    status: str = MaintenanceStatus.COMPLETED


class Part(Entity):
    """A spare part held in inventory (``partsInventory``)."""

    part_name: str
    part_number: str | None = None
    category: str | None = None
    brand: str | None = None
    current_stock: FlexFloat = None
    minimum_stock: FlexFloat = None
    maximum_stock: FlexFloat = None
    unit: str | None = None
    unit_price: FlexFloat = None
    total_value: FlexFloat = None
    status: str | None = None
    supplier: str | None = None
    supplier_contact: str | None = None
    location: str | None = None
    vehicle_compatibility: str | None = None
    expiry_date: str | None = None
    description: str | None = None
