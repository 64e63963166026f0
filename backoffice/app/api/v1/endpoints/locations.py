from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db, get_procurement
from backoffice.app.db.models.models_v1 import Location
from backoffice.services.procurement import ProcurementService

router = APIRouter(prefix="/locations")


@router.get("")
def list_locations(
    active: bool | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Location).order_by(Location.name, Location.id)
    if active is not None:
        stmt = stmt.where(Location.active == active)

    return [{"id": l.id, "name": l.name, "active": l.active} for l in db.execute(stmt).scalars()]


@router.get("/{location_id}")
def get_location(location_id: int, svc: ProcurementService = Depends(get_procurement)):
    # NOT_FOUND si inconnue (même résolution que les transferts)
    ref = svc.locations.retrieve(location_id)
    return {"id": ref.id, "name": ref.name}
