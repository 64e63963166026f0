import os

# avant tout import backoffice : get_settings() est mis en cache
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import Session, sessionmaker

from backoffice.app.core.config import Settings
from backoffice.app.db.base import Base
from backoffice.app.db.models import models_v1  # noqa: F401
from backoffice.app.db.models.models_v1 import Location, Product, StockLevel, User
from backoffice.app.db.session import make_engine
from backoffice.services.order_lines import NewLine
from backoffice.services.procurement import ProcurementService
from backoffice.services.suppliers import SupplierInput


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base SQLite fichier, recréée pour chaque test.

    Le saga de transfert committe étape par étape : on ne peut pas tout
    englober dans une transaction rollbackée en fin de test.
    """
    eng = make_engine(f"sqlite+pysqlite:///{tmp_path / 'backoffice.db'}")
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(DATABASE_URL="sqlite+pysqlite:///:memory:", _env_file=None)


@pytest.fixture
def procurement(db_session, settings) -> ProcurementService:
    return ProcurementService(db_session, settings)


@pytest.fixture
def world(db_session):
    """
    GIVEN commun :
    - 2 locations (Warehouse, Shop)
    - 1 produit, stock 50 en Warehouse, 5 en Shop
    - 1 utilisateur (id utilisé comme acteur)
    """
    warehouse = Location(name="Warehouse", active=True)
    shop = Location(name="Shop", active=True)
    product = Product(sku="SKU-001", name="Widget", active=True)
    other_product = Product(sku="SKU-002", name="Gadget", active=True)
    user = User(first_name="Hina", last_name="Teriierooiterai", email="hina@example.com", active=True)
    db_session.add_all([warehouse, shop, product, other_product, user])
    db_session.flush()

    db_session.add_all(
        [
            StockLevel(product_id=product.id, location_id=warehouse.id, stocked_quantity=50),
            StockLevel(product_id=product.id, location_id=shop.id, stocked_quantity=5),
        ]
    )
    db_session.commit()
    return SimpleNamespace(
        warehouse=warehouse,
        shop=shop,
        product=product,
        other_product=other_product,
        user=user,
        actor=str(user.id),
    )


@pytest.fixture
def make_supplier(procurement):
    counter = {"n": 0}

    def _make(name: str = "ACME", **kwargs):
        counter["n"] += 1
        data = SupplierInput(
            name=name,
            legal_name=f"{name} SARL",
            tax_id=kwargs.pop("tax_id", f"TAX-{counter['n']:04d}"),
            **kwargs,
        )
        return procurement.create_supplier(data)

    return _make


@pytest.fixture
def make_order(procurement, world):
    """Commande draft d'une ligne produit, destination Warehouse."""

    def _make(supplier, *, quantity: int = 10, unit_price: str = "12.50", product=None, **kwargs):
        product = product or world.product
        kwargs.setdefault("destination_location_id", world.warehouse.id)
        return procurement.create_order(
            supplier.id,
            [
                NewLine(
                    product_id=product.id,
                    product_title=product.name,
                    supplier_sku=kwargs.pop("supplier_sku", None),
                    quantity_ordered=quantity,
                    unit_price=Decimal(unit_price),
                )
            ],
            **kwargs,
        )

    return _make


@pytest.fixture
def stock(db_session):
    """Quantité relue en base (None si pas de niveau)."""

    def _read(product_id: int, location_id: int) -> int | None:
        sl = db_session.get(StockLevel, (product_id, location_id), populate_existing=True)
        return None if sl is None else sl.stocked_quantity

    return _read
