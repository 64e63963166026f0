from datetime import datetime

from pydantic import BaseModel

from backoffice.app.db.models.core_types import OrderStatus


class PriceInfoRead(BaseModel):
    supplier_id: int
    product_id: int
    product_title: str
    unit_price: float
    tax_rate: float
    discount_rate: float
    supplier_sku: str | None = None
    order_id: int
    order_display_id: str | None = None
    order_date: datetime
    order_status: OrderStatus

    class Config:
        from_attributes = True


class CheaperOptionRead(BaseModel):
    supplier_id: int
    supplier_name: str
    unit_price: float
    savings: float
    savings_percentage: float
    supplier_sku: str | None = None
    last_order_date: datetime

    class Config:
        from_attributes = True


class PriceComparisonRead(BaseModel):
    product_id: int
    current_supplier_id: int
    current_price: float | None = None
    cheapest_option: CheaperOptionRead | None = None

    class Config:
        from_attributes = True
