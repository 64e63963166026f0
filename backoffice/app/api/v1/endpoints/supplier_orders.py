from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backoffice.app.api.deps import get_procurement
from backoffice.app.db.models.core_types import OrderStatus, OrderType
from backoffice.app.db.models.models_v1 import SupplierOrder, SupplierOrderLine
from backoffice.app.schemas.supplier_order import (
    SupplierOrderLineRead,
    SupplierOrderRead,
    SupplierOrderSummary,
    ValidStatusesRead,
)
from backoffice.services.order_lines import NewLine
from backoffice.services.orders import OrderFilters
from backoffice.services.procurement import ProcurementService

router = APIRouter(prefix="/supplier-orders")


# ---------- Schemas ----------
class LineCreate(BaseModel):
    product_id: int | None = None
    product_title: str = Field(min_length=1, max_length=255)
    supplier_sku: str | None = Field(default=None, max_length=64)
    quantity_ordered: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0)
    discount_rate: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None

    def to_new_line(self) -> NewLine:
        return NewLine(**self.model_dump())


class OrderCreate(BaseModel):
    supplier_id: int
    destination_location_id: int | None = None
    expected_delivery_date: datetime | None = None
    reference: str | None = Field(default=None, max_length=128)
    notes: str | None = None
    internal_notes: str | None = None
    created_by: str | None = Field(default=None, max_length=64)
    lines: list[LineCreate] = Field(default_factory=list)


class StatusUpdate(BaseModel):
    status: OrderStatus
    actor: str | None = Field(default=None, max_length=64)


class LineReceive(BaseModel):
    quantity_received: int
    notes: str | None = None
    actor: str | None = Field(default=None, max_length=64)


class LineIncident(BaseModel):
    has_incident: bool
    notes: str | None = None
    actor: str | None = Field(default=None, max_length=64)


# ---------- Présentation ----------
def line_read(line: SupplierOrderLine, svc: ProcurementService) -> SupplierOrderLineRead:
    out = SupplierOrderLineRead.model_validate(line)
    return out.model_copy(update={"received_by_name": svc.actor(line.received_by).label})


def order_read(order: SupplierOrder, svc: ProcurementService) -> SupplierOrderRead:
    out = SupplierOrderRead.model_validate(order)
    return out.model_copy(
        update={
            "created_by_name": svc.actor(order.created_by).label,
            "received_by_name": svc.actor(order.received_by).label,
            "lines": [line_read(l, svc) for l in order.lines],
        }
    )


# ---------- Endpoints ----------
@router.get("", response_model=list[SupplierOrderSummary])
def list_orders(
    status: OrderStatus | None = None,
    supplier_id: int | None = None,
    order_type: OrderType | None = None,
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    svc: ProcurementService = Depends(get_procurement),
):
    return svc.list_orders(
        OrderFilters(status=status, supplier_id=supplier_id, order_type=order_type, limit=limit, offset=offset)
    )


@router.post("", response_model=SupplierOrderRead)
def create_order(payload: OrderCreate, svc: ProcurementService = Depends(get_procurement)):
    order = svc.create_order(
        payload.supplier_id,
        [ln.to_new_line() for ln in payload.lines],
        destination_location_id=payload.destination_location_id,
        expected_delivery_date=payload.expected_delivery_date,
        reference=payload.reference,
        notes=payload.notes,
        internal_notes=payload.internal_notes,
        created_by=payload.created_by,
    )
    return order_read(order, svc)


@router.get("/{order_id}", response_model=SupplierOrderRead)
def get_order(order_id: int, svc: ProcurementService = Depends(get_procurement)):
    return order_read(svc.get_order(order_id), svc)


@router.post("/{order_id}/lines", response_model=SupplierOrderLineRead)
def add_line(order_id: int, payload: LineCreate, svc: ProcurementService = Depends(get_procurement)):
    return line_read(svc.add_line(order_id, payload.to_new_line()), svc)


@router.post("/{order_id}/status", response_model=SupplierOrderRead)
def update_status(order_id: int, payload: StatusUpdate, svc: ProcurementService = Depends(get_procurement)):
    order = svc.update_order_status(order_id, payload.status, payload.actor)
    return order_read(order, svc)


@router.get("/{order_id}/valid-statuses", response_model=ValidStatusesRead)
def valid_statuses(order_id: int, svc: ProcurementService = Depends(get_procurement)):
    current, allowed = svc.valid_statuses(order_id)
    return ValidStatusesRead(order_id=order_id, current_status=current, valid_next_statuses=allowed)


@router.post("/lines/{line_id}/receive", response_model=SupplierOrderLineRead)
def receive_line(line_id: int, payload: LineReceive, svc: ProcurementService = Depends(get_procurement)):
    # quantité <= 0 : rejetée par le service (VALIDATION), pas par le schéma
    line = svc.receive_line(line_id, payload.quantity_received, payload.notes, payload.actor)
    return line_read(line, svc)


@router.post("/lines/{line_id}/incident", response_model=SupplierOrderLineRead)
def set_incident(line_id: int, payload: LineIncident, svc: ProcurementService = Depends(get_procurement)):
    line = svc.set_line_incident(line_id, payload.has_incident, payload.notes, payload.actor)
    return line_read(line, svc)
