"""Vehicle and transport-system models."""

from __future__ import annotations

from pydantic import Field

from fleetsync.models._base import Entity, FlexFloat, FlexInt, Timestamp


class Vehicle(Entity):
    """A vehicle in the fleet registry (``vehicles`` collection).

    The ``id`` is the vehicle number painted on the vehicle and doubles as
    the database key.
    """

    model: str | None = None
    year: FlexInt = None
    capacity: FlexFloat = None
    driver: str | None = None
    registration_number: str | None = None
    type: str | None = None
    status: str | None = None
    fuel: FlexFloat = None
    fuel_type: str | None = None
    mileage: FlexFloat = None
    location: str | None = None
    insurance_expiry: str | None = None
    purchase_date: str | None = None
    purchase_price: FlexFloat = None
    notes: str | None = None


class TransportRecord(Entity):
    """A vehicle entry of the transport system or a transport-history row."""

    vehicle_number: str | None = None
    trip_id: str | None = None
    driver_name: str | None = None
    route: str | None = None
    type: str | None = None
    status: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    distance: FlexFloat = None
    fuel_used: FlexFloat = None
    cost: FlexFloat = None
    customer_name: str | None = None
    customer_address: str | None = None


class VehicleLocation(Entity):
    """Last reported position of a vehicle (``vehicleLocations``)."""

    vehicle_id: str | None = None
    latitude: FlexFloat = Field(default=None, alias="lat")
    longitude: FlexFloat = Field(default=None, alias="lng")
    speed: FlexFloat = None
    timestamp: Timestamp = None
