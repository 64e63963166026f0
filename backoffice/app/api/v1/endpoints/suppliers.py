from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from backoffice.app.api.deps import get_procurement
from backoffice.app.db.models.core_types import OrderStatus, SupplierType
from backoffice.app.schemas.pricing import PriceComparisonRead, PriceInfoRead
from backoffice.app.schemas.supplier import ProductSupplierRead, SupplierRead
from backoffice.app.schemas.supplier_order import SupplierOrderSummary
from backoffice.services.orders import OrderFilters
from backoffice.services.procurement import ProcurementService
from backoffice.services.suppliers import SupplierInput

router = APIRouter(prefix="/suppliers")


# ---------- Schemas ----------
class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    legal_name: str = Field(min_length=1, max_length=255)
    tax_id: str = Field(min_length=1, max_length=64)
    code: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    currency_code: str = Field(default="EUR", min_length=3, max_length=3)
    notes: str | None = None
    meta: dict[str, Any] | None = None


class SupplierUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    legal_name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    currency_code: str | None = Field(default=None, min_length=3, max_length=3)
    notes: str | None = None
    meta: dict[str, Any] | None = None


class ProductLinkCreate(BaseModel):
    product_id: int
    supplier_sku: str | None = Field(default=None, max_length=64)
    supplier_product_name: str | None = Field(default=None, max_length=255)
    cost_price: Decimal | None = Field(default=None, ge=0)
    currency_code: str = Field(default="EUR", min_length=3, max_length=3)
    minimum_order_quantity: int = Field(default=1, ge=1)
    lead_time_days: int | None = Field(default=None, ge=0)
    is_preferred_supplier: bool = False


class CostUpdate(BaseModel):
    cost_price: Decimal = Field(ge=0)
    actor: str | None = Field(default=None, max_length=64)


class ProductSync(BaseModel):
    supplier_sku: str | None = Field(default=None, max_length=64)
    unit_price: Decimal | None = Field(default=None, ge=0)
    actor: str | None = Field(default=None, max_length=64)


# ---------- Fournisseurs ----------
@router.get("", response_model=list[SupplierRead])
def list_suppliers(
    active: bool | None = None,
    supplier_type: SupplierType | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    svc: ProcurementService = Depends(get_procurement),
):
    return svc.suppliers.list(active=active, supplier_type=supplier_type, limit=limit, offset=offset)


@router.post("", response_model=SupplierRead)
def create_supplier(payload: SupplierCreate, svc: ProcurementService = Depends(get_procurement)):
    return svc.create_supplier(SupplierInput(**payload.model_dump()))


@router.get("/{supplier_id}", response_model=SupplierRead)
def get_supplier(supplier_id: int, svc: ProcurementService = Depends(get_procurement)):
    return svc.suppliers.get(supplier_id)


@router.patch("/{supplier_id}", response_model=SupplierRead)
def update_supplier(supplier_id: int, payload: SupplierUpdate, svc: ProcurementService = Depends(get_procurement)):
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No field to update")
    return svc.update_supplier(supplier_id, changes)


@router.post("/{supplier_id}/deactivate", response_model=SupplierRead)
def deactivate_supplier(supplier_id: int, svc: ProcurementService = Depends(get_procurement)):
    return svc.deactivate_supplier(supplier_id)


@router.get("/{supplier_id}/orders", response_model=list[SupplierOrderSummary])
def supplier_orders(
    supplier_id: int,
    status: OrderStatus | None = None,
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    svc: ProcurementService = Depends(get_procurement),
):
    svc.suppliers.get(supplier_id)
    return svc.list_orders(OrderFilters(status=status, supplier_id=supplier_id, limit=limit, offset=offset))


# ---------- Produits & prix ----------
@router.get("/{supplier_id}/products", response_model=list[ProductSupplierRead])
def list_product_links(supplier_id: int, svc: ProcurementService = Depends(get_procurement)):
    return svc.links_for_supplier(supplier_id)


@router.post("/{supplier_id}/products", response_model=ProductSupplierRead)
def link_product(supplier_id: int, payload: ProductLinkCreate, svc: ProcurementService = Depends(get_procurement)):
    fields = payload.model_dump()
    product_id = fields.pop("product_id")
    return svc.link_product(product_id, supplier_id, **fields)


@router.put("/{supplier_id}/products/{product_id}/cost", response_model=ProductSupplierRead)
def update_cost(
    supplier_id: int,
    product_id: int,
    payload: CostUpdate,
    svc: ProcurementService = Depends(get_procurement),
):
    return svc.update_cost(product_id, supplier_id, payload.cost_price, payload.actor)


@router.post("/{supplier_id}/products/{product_id}/sync", response_model=ProductSupplierRead)
def sync_product(
    supplier_id: int,
    product_id: int,
    payload: ProductSync,
    svc: ProcurementService = Depends(get_procurement),
):
    return svc.sync_product_supplier(
        product_id,
        supplier_id,
        supplier_sku=payload.supplier_sku,
        unit_price=payload.unit_price,
        actor=payload.actor,
    )


@router.get("/{supplier_id}/prices", response_model=list[PriceInfoRead])
def supplier_prices(supplier_id: int, svc: ProcurementService = Depends(get_procurement)):
    return svc.prices_for_supplier(supplier_id)


@router.get("/{supplier_id}/products/{product_id}/last-price", response_model=PriceInfoRead | None)
def last_price(supplier_id: int, product_id: int, svc: ProcurementService = Depends(get_procurement)):
    svc.suppliers.get(supplier_id)
    return svc.last_price(supplier_id, product_id)


@router.get("/{supplier_id}/products/{product_id}/price-comparison", response_model=PriceComparisonRead)
def price_comparison(supplier_id: int, product_id: int, svc: ProcurementService = Depends(get_procurement)):
    svc.suppliers.get(supplier_id)
    return svc.compare_prices(product_id, supplier_id)
