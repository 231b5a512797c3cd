"""Trip model."""

from __future__ import annotations

from fleetsync.models._base import Entity, FlexFloat


class Trip(Entity):
    """A completed or ongoing trip (``trips`` collection)."""

    trip_id: str | None = None
    order_id: str | None = None
    vehicle_number: str | None = None
    driver_name: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    route: str | None = None
    start_date: str | None = None
    status: str | None = None
    distance: FlexFloat = None
    cost: FlexFloat = None
    fuel_cost: FlexFloat = None
    total: FlexFloat = None
