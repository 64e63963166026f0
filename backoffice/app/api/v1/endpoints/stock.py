from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db
from backoffice.app.core.errors import NotFoundError
from backoffice.app.db.models.models_v1 import Location, Product, StockLevel
from backoffice.app.schemas.stock_level import StockLevelRead

router = APIRouter(prefix="/stock")


@router.get("", response_model=list[StockLevelRead])
def list_stock(
    location_id: int | None = None,
    product_id: int | None = None,
    in_stock: bool = False,
    db: Session = Depends(get_db),
):
    """
    Niveaux de stock, en lecture seule.

    Écrits uniquement par la synchro des commandes et les transferts ;
    chaque écriture a son mouvement dans /inventory-movements.
    """
    stmt = (
        select(StockLevel)
        .join(Location, Location.id == StockLevel.location_id)
        .join(Product, Product.id == StockLevel.product_id)
        .order_by(Location.name, Product.sku)
    )
    if location_id is not None:
        stmt = stmt.where(StockLevel.location_id == location_id)
    if product_id is not None:
        stmt = stmt.where(StockLevel.product_id == product_id)
    if in_stock:
        stmt = stmt.where(StockLevel.stocked_quantity > 0)

    return db.execute(stmt).scalars().all()


@router.get("/{product_id}/{location_id}", response_model=StockLevelRead)
def get_level(product_id: int, location_id: int, db: Session = Depends(get_db)):
    level = db.get(StockLevel, (product_id, location_id))
    if level is None:
        raise NotFoundError("StockLevel", f"{product_id}/{location_id}")
    return level
