from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from backoffice.app.api.deps import get_procurement
from backoffice.app.schemas.inventory_movement import InventoryMovementRead
from backoffice.services.procurement import ProcurementService

router = APIRouter(prefix="/inventory-movements")


@router.get("", response_model=list[InventoryMovementRead])
def list_movements(
    product_id: int | None = None,
    reference_id: str | None = None,
    stock_only: bool = False,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    svc: ProcurementService = Depends(get_procurement),
):
    """
    Ledger en lecture seule : par produit (récent d'abord) ou par référence (transfert, commande).

    Une réception de ligne produit un supplier_receipt de trace
    (meta.stock_applied = false) en plus de celui de la synchro stock :
    sommer les quantités par type avec stock_only=true.
    """
    if reference_id:
        return svc.movements_for_reference(reference_id, stock_only=stock_only)
    if product_id is None:
        raise HTTPException(status_code=400, detail="product_id or reference_id is required")
    return svc.movements_for_product(product_id, limit=limit, offset=offset, stock_only=stock_only)
