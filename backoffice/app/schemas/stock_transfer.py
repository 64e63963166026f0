from pydantic import BaseModel

from backoffice.app.schemas.supplier_order import SupplierOrderRead


class StockSnapshot(BaseModel):
    source: int
    destination: int


class StockTransferRead(BaseModel):
    transfer_id: str
    replayed: bool = False
    quantity: int
    source_location_name: str | None = None
    destination_location_name: str | None = None
    stock_before: StockSnapshot
    stock_after: StockSnapshot
    order: SupplierOrderRead

    class Config:
        from_attributes = True


class TransferStatisticsRead(BaseModel):
    total_transfers: int
    total_units: int
    by_status: dict[str, int]

    class Config:
        from_attributes = True
