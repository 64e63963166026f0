"""
Lecture des commandes fournisseur.

Les acteurs sont stockés en id brut ; ``*_by_name`` est rempli à
l'affichage (id brut si l'annuaire ne le connaît pas).
"""
from datetime import datetime

from pydantic import BaseModel

from backoffice.app.db.models.core_types import LineStatus, OrderStatus, OrderType


class SupplierOrderLineRead(BaseModel):
    id: int
    order_id: int
    product_id: int | None = None
    product_title: str
    supplier_sku: str | None = None

    quantity_ordered: int
    quantity_received: int
    quantity_pending: int

    unit_price: float
    tax_rate: float
    discount_rate: float
    total_price: float

    line_status: LineStatus
    received_at: datetime | None = None
    received_by: str | None = None
    received_by_name: str | None = None
    reception_notes: str | None = None
    notes: str | None = None

    class Config:
        from_attributes = True


class SupplierOrderRead(BaseModel):
    id: int
    display_id: str | None = None
    supplier_id: int
    order_type: OrderType
    status: OrderStatus

    order_date: datetime
    expected_delivery_date: datetime | None = None
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    received_at: datetime | None = None

    currency_code: str
    subtotal: float
    tax_total: float
    discount_total: float
    total: float

    source_location_id: int | None = None
    source_location_name: str | None = None
    destination_location_id: int | None = None
    destination_location_name: str | None = None

    reference: str | None = None
    notes: str | None = None
    internal_notes: str | None = None

    created_by: str | None = None
    created_by_name: str | None = None
    received_by: str | None = None
    received_by_name: str | None = None
    created_at: datetime

    lines: list[SupplierOrderLineRead] = []

    class Config:
        from_attributes = True


class SupplierOrderSummary(BaseModel):
    id: int
    display_id: str | None = None
    supplier_id: int
    order_type: OrderType
    status: OrderStatus
    order_date: datetime
    total: float
    currency_code: str

    class Config:
        from_attributes = True


class ValidStatusesRead(BaseModel):
    order_id: int
    current_status: OrderStatus
    valid_next_statuses: list[OrderStatus]
