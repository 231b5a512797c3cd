"""Fuel consumption and fuel purchase models."""

from __future__ import annotations

from fleetsync.models._base import Entity, FlexFloat


class FuelRecord(Entity):
    """A refuelling event for one vehicle (``fuelRecords``)."""

    vehicle_id: str
    driver_name: str | None = None
    quantity: FlexFloat = None
    price_per_liter: FlexFloat = None
    total_amount: FlexFloat = None
    fuel_type: str | None = None
    fuel_station_name: str | None = None
    fuel_station_location: str | None = None
    odometer: FlexFloat = None
    previous_odometer: FlexFloat = None
    efficiency: FlexFloat = None
    payment_method: str | None = None
    bill_number: str | None = None
    date: str | None = None
    time: str | None = None
    notes: str | None = None


class FuelPurchase(Entity):
    """A bulk fuel purchase at a pump (``fuelPurchases``)."""

    vehicle_number: str | None = None
    pump_name: str | None = None
    fuel_type: str | None = None
    quantity: FlexFloat = None
    price_per_liter: FlexFloat = None
    total_amount: FlexFloat = None
    bill_number: str | None = None
    date: str | None = None
    status: str | None = None
