from datetime import datetime

from pydantic import BaseModel


class StockLevelRead(BaseModel):
    product_id: int
    location_id: int

    stocked_quantity: int  # écrit uniquement par les services (réception, transfert)
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
