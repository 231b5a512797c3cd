"""Derived fleet statistics computed from synchronized entity lists."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from fleetsync._constants import CRITICAL_STOCK_PCT, LOW_STOCK_PCT
from fleetsync.models._base import safe_float
from fleetsync.models.maintenance import MaintenanceStatus, StockStatus


def _field(item: Any, camel: str, snake: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(camel, item.get(snake))
    return getattr(item, snake, None)


def stock_status(current: Any, minimum: Any) -> StockStatus:
    """Classify a stock level against its minimum.

    At or below the minimum is critical, up to 150 % of it is low. A part
    with no (or a non-positive) minimum is only critical when it has run out.
    """
    current_value = safe_float(current) or 0.0
    minimum_value = safe_float(minimum) or 0.0
    if minimum_value <= 0:
        return StockStatus.CRITICAL if current_value <= 0 else StockStatus.IN_STOCK
    percentage = current_value / minimum_value * 100
    if percentage <= CRITICAL_STOCK_PCT:
        return StockStatus.CRITICAL
    if percentage <= LOW_STOCK_PCT:
        return StockStatus.LOW
    return StockStatus.IN_STOCK


def part_valuation(fields: Mapping[str, Any]) -> dict[str, Any]:
    """``totalValue`` and stock ``status`` for a part payload.

    Returns only the keys that can be derived from *fields*.
    """
    derived: dict[str, Any] = {}
    current = safe_float(fields.get("currentStock"))
    price = safe_float(fields.get("unitPrice"))
    if current is not None and price is not None:
        derived["totalValue"] = current * price
    if "currentStock" in fields and "minimumStock" in fields:
        derived["status"] = str(stock_status(fields["currentStock"], fields["minimumStock"]))
    return derived


class MaintenanceStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_scheduled: int = 0
    in_progress: int = 0
    completed: int = 0
    pending: int = 0
    critical: int = 0
    total_cost: float = 0.0


class VehicleStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    active: int = 0
    maintenance: int = 0
    inactive: int = 0


def maintenance_stats(items: Iterable[Any]) -> MaintenanceStats:
    """Summarize a maintenance schedule by status, priority and estimated cost."""
    statuses: Counter[str] = Counter()
    critical = 0
    total_cost = 0.0
    count = 0
    for item in items:
        count += 1
        statuses[str(_field(item, "status", "status") or "")] += 1
        if _field(item, "priority", "priority") == "Critical":
            critical += 1
        total_cost += safe_float(_field(item, "estimatedCost", "estimated_cost")) or 0.0
    return MaintenanceStats(
        total_scheduled=count,
        in_progress=statuses[MaintenanceStatus.IN_PROGRESS],
        completed=statuses[MaintenanceStatus.COMPLETED],
        pending=statuses[MaintenanceStatus.PENDING] + statuses[MaintenanceStatus.SCHEDULED],
        critical=critical,
        total_cost=total_cost,
    )


def vehicle_stats(vehicles: Iterable[Any]) -> VehicleStats:
    """Count vehicles by operational status."""
    statuses: Counter[str] = Counter()
    total = 0
    for vehicle in vehicles:
        total += 1
        statuses[str(_field(vehicle, "status", "status") or "").lower()] += 1
    return VehicleStats(
        total=total,
        active=statuses["active"],
        maintenance=statuses["maintenance"],
        inactive=statuses["inactive"],
    )


def vehicles_by_type(vehicles: Iterable[Any], vehicle_type: str) -> list[Any]:
    return [v for v in vehicles if _field(v, "type", "type") == vehicle_type]
