from __future__ import annotations

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from backoffice.app.core.config import Settings, get_settings
from backoffice.app.db.session import SessionLocal
from backoffice.services.procurement import ProcurementService


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_procurement(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ProcurementService:
    return ProcurementService(db, settings)
