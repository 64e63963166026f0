from datetime import datetime
from typing import Any

from pydantic import BaseModel

from backoffice.app.db.models.core_types import SupplierType


class SupplierRead(BaseModel):
    id: int
    name: str
    legal_name: str
    code: str | None = None
    tax_id: str
    email: str | None = None
    phone: str | None = None
    supplier_type: SupplierType
    currency_code: str
    is_active: bool
    notes: str | None = None
    meta: dict[str, Any] | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProductSupplierRead(BaseModel):
    id: int
    product_id: int
    supplier_id: int
    supplier_sku: str | None = None
    supplier_product_name: str | None = None
    cost_price: float | None = None
    currency_code: str
    minimum_order_quantity: int
    lead_time_days: int | None = None
    is_preferred_supplier: bool
    is_active: bool
    last_price_update: datetime | None = None
    # append-only : {old_price, new_price, changed_at, changed_by}
    price_history: list[dict[str, Any]] = []

    class Config:
        from_attributes = True
