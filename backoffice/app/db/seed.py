from __future__ import annotations

import logging

from sqlalchemy import select

from backoffice.app.core.config import get_settings
from backoffice.app.core.logging_setup import setup_logging
from backoffice.app.db.models.models_v1 import Location, User
from backoffice.app.db.session import SessionLocal
from backoffice.services.suppliers import SupplierRegistry

logger = logging.getLogger(__name__)

LOCATIONS = ("Entrepôt principal", "Magasin")


def run_seed(db) -> None:
    # 1) Locations
    for name in LOCATIONS:
        if not db.scalar(select(Location).where(Location.name == name)):
            db.add(Location(name=name, active=True))
    db.flush()

    # 2) Admin user
    if not db.scalar(select(User).where(User.email == "admin@backoffice.local")):
        db.add(User(first_name="Admin", last_name="Back-office", email="admin@backoffice.local", active=True))

    # 3) Fournisseur virtuel des transferts
    SupplierRegistry(db).ensure_transfer_supplier(get_settings().TRANSFER_SUPPLIER_CODE)

    db.commit()


def main() -> None:
    setup_logging(get_settings())
    db = SessionLocal()
    try:
        run_seed(db)
        logger.info("SEED OK: locations=%s, user=admin, transfer supplier", ", ".join(LOCATIONS))
    finally:
        db.close()


if __name__ == "__main__":
    main()
