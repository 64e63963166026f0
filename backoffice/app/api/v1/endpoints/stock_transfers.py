from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from pydantic import BaseModel, Field

from backoffice.app.api.deps import get_procurement
from backoffice.app.api.v1.endpoints.supplier_orders import order_read
from backoffice.app.schemas.stock_transfer import StockTransferRead, TransferStatisticsRead
from backoffice.services.procurement import ProcurementService
from backoffice.services.transfers import TransferRequest

router = APIRouter(prefix="/stock-transfers")


class TransferCreate(BaseModel):
    product_id: int
    from_location_id: int
    to_location_id: int
    # <= 0 et source == destination : VALIDATION levée par le service
    quantity: int
    inventory_item_id: int | None = None
    performed_by: str | None = Field(default=None, max_length=64)
    reason: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    expected_delivery_date: datetime | None = None


def _optional_idempotency_key(idempotency_key: str | None) -> str | None:
    if idempotency_key is None or not idempotency_key.strip():
        return None
    key = idempotency_key.strip()
    if len(key) > 64:
        raise HTTPException(status_code=400, detail="Idempotency-Key too long (max 64)")
    return key


@router.post("", response_model=StockTransferRead, status_code=201)
def create_transfer(
    payload: TransferCreate,
    response: Response,
    svc: ProcurementService = Depends(get_procurement),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    result = svc.transfer_stock(
        TransferRequest(**payload.model_dump(), idempotency_key=_optional_idempotency_key(idempotency_key))
    )
    # idempotent replay
    if result.replayed:
        response.status_code = 200

    out = StockTransferRead.model_validate(result)
    return out.model_copy(update={"order": order_read(result.order, svc)})


@router.get("", response_model=TransferStatisticsRead)
def transfer_statistics(svc: ProcurementService = Depends(get_procurement)):
    return svc.transfer_statistics()
