"""Customer, invoice and contract models."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from fleetsync.models._base import Entity, FlexFloat


class Customer(Entity):
    """A billed customer (``customers``)."""

    name: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    gst_number: str | None = None


class Invoice(Entity):
    """A generated invoice (``invoices``)."""

    invoice_number: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    date: str | None = None
    due_date: str | None = None
    items: list[dict[str, Any]] = Field(default_factory=list)
    subtotal: FlexFloat = None
    tax: FlexFloat = None
    total: FlexFloat = None
    status: str | None = None


class Contract(Entity):
    """A customer transport contract (``contracts``)."""

    customer_id: str | None = None
    customer_name: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    rate: FlexFloat = None
    status: str | None = None
