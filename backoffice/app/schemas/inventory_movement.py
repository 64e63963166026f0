from datetime import datetime

from pydantic import BaseModel

from backoffice.app.db.models.core_types import MovementType


class InventoryMovementRead(BaseModel):
    id: int
    movement_type: MovementType
    reference_id: str | None = None
    reference_type: str | None = None
    order_line_id: int | None = None
    product_id: int
    product_title: str
    from_location_id: int | None = None
    from_location_name: str | None = None
    to_location_id: int | None = None
    to_location_name: str | None = None
    quantity: int  # signé
    unit_cost: float | None = None
    total_cost: float | None = None
    reason: str | None = None
    notes: str | None = None
    performed_by: str | None = None
    performed_at: datetime

    class Config:
        from_attributes = True
