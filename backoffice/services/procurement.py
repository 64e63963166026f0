"""
Procurement service.

Point d'entrée unique des flux d'achat et de transfert : assemble les
services (injection explicite) à partir d'une Session et des Settings, et
porte la frontière transactionnelle (commit en fin d'opération réussie,
rollback sinon). Le saga de transfert committe lui-même étape par étape.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy.orm import Session

from backoffice.app.core.config import Settings
from backoffice.app.db.models.models_v1 import (
    InventoryMovement,
    ProductSupplier,
    Supplier,
    SupplierOrder,
    SupplierOrderLine,
)
from backoffice.app.db.models.core_types import OrderStatus
from backoffice.services.inventory import (
    ActorRef,
    IdentityDirectory,
    InventoryService,
    LocationDirectory,
    ProductCatalog,
    SqlIdentityDirectory,
    SqlInventoryService,
    SqlLocationDirectory,
    SqlProductCatalog,
    resolve_actor,
)
from backoffice.services.ledger import MovementLedger
from backoffice.services.order_lines import NewLine, OrderLineLedger
from backoffice.services.orders import OrderFilters, OrderLifecycle, SupplierOrderService
from backoffice.services.pricing import PriceComparison, PriceHistoryTracker, PriceInfo
from backoffice.services.suppliers import SupplierInput, SupplierRegistry
from backoffice.services.transfers import (
    TransferAsOrderSaga,
    TransferRequest,
    TransferResult,
    TransferStatistics,
)

logger = logging.getLogger(__name__)


class ProcurementService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        *,
        inventory: InventoryService | None = None,
        products: ProductCatalog | None = None,
        locations: LocationDirectory | None = None,
        identity: IdentityDirectory | None = None,
    ):
        self.db = db
        self.settings = settings

        self.inventory = inventory or SqlInventoryService(db)
        self.products = products or SqlProductCatalog(db)
        self.locations = locations or SqlLocationDirectory(db)
        self.identity = identity or SqlIdentityDirectory(db)

        self.ledger = MovementLedger(db, settings.LEDGER_DURABILITY)
        self.suppliers = SupplierRegistry(db)
        self.lifecycle = OrderLifecycle(
            db,
            inventory=self.inventory,
            products=self.products,
            locations=self.locations,
            ledger=self.ledger,
            default_location_id=settings.DEFAULT_LOCATION_ID,
        )
        self.lines = OrderLineLedger(
            db,
            ledger=self.ledger,
            lifecycle=self.lifecycle,
            receipt_policy=settings.RECEIPT_POLICY,
        )
        self.orders = SupplierOrderService(
            db,
            suppliers=self.suppliers,
            lifecycle=self.lifecycle,
            lines=self.lines,
            locations=self.locations,
            currency_code=settings.CURRENCY_CODE,
        )
        self.pricing = PriceHistoryTracker(
            db,
            suppliers=self.suppliers,
            products=self.products,
            include_draft=settings.PRICE_HISTORY_INCLUDE_DRAFT,
        )
        self.transfers = TransferAsOrderSaga(
            db,
            suppliers=self.suppliers,
            inventory=self.inventory,
            products=self.products,
            locations=self.locations,
            ledger=self.ledger,
            lines=self.lines,
            lifecycle=self.lifecycle,
            supplier_code=settings.TRANSFER_SUPPLIER_CODE,
            expected_delivery_days=settings.TRANSFER_EXPECTED_DELIVERY_DAYS,
            currency_code=settings.CURRENCY_CODE,
        )

    @contextmanager
    def _unit_of_work(self):
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ---------- Commandes ----------
    def create_order(
        self,
        supplier_id: int,
        lines: Iterable[NewLine],
        *,
        destination_location_id: int | None = None,
        expected_delivery_date: datetime | None = None,
        reference: str | None = None,
        notes: str | None = None,
        internal_notes: str | None = None,
        created_by: str | None = None,
    ) -> SupplierOrder:
        with self._unit_of_work():
            order = self.orders.create_order(
                supplier_id,
                lines,
                destination_location_id=destination_location_id,
                expected_delivery_date=expected_delivery_date,
                reference=reference,
                notes=notes,
                internal_notes=internal_notes,
                created_by=created_by,
            )
        return order

    def get_order(self, order_id: int) -> SupplierOrder:
        return self.orders.get_order(order_id)

    def list_orders(self, filters: OrderFilters | None = None) -> list[SupplierOrder]:
        return self.orders.list_orders(filters)

    def add_line(self, order_id: int, data: NewLine) -> SupplierOrderLine:
        with self._unit_of_work():
            line = self.orders.add_line(order_id, data)
        return line

    def update_order_status(self, order_id: int, new_status: OrderStatus, actor: str | None = None) -> SupplierOrder:
        with self._unit_of_work():
            order = self.orders.update_order_status(order_id, new_status, actor)
        return order

    def valid_statuses(self, order_id: int) -> tuple[OrderStatus, list[OrderStatus]]:
        return self.orders.valid_statuses(order_id)

    # ---------- Lignes ----------
    def receive_line(
        self,
        line_id: int,
        quantity_received: int,
        notes: str | None = None,
        actor: str | None = None,
    ) -> SupplierOrderLine:
        with self._unit_of_work():
            line = self.lines.receive_line(line_id, quantity_received, notes, actor)
        return line

    def set_line_incident(
        self,
        line_id: int,
        has_incident: bool,
        notes: str | None = None,
        actor: str | None = None,
    ) -> SupplierOrderLine:
        with self._unit_of_work():
            line = self.lines.update_incident(line_id, has_incident, notes, actor)
        return line

    # ---------- Transferts ----------
    def transfer_stock(self, request: TransferRequest) -> TransferResult:
        return self.transfers.transfer_stock(request)

    def transfer_statistics(self) -> TransferStatistics:
        return self.transfers.transfer_statistics()

    # ---------- Prix ----------
    def last_price(self, supplier_id: int, product_id: int) -> PriceInfo | None:
        return self.pricing.last_price(supplier_id, product_id)

    def compare_prices(self, product_id: int, exclude_supplier_id: int) -> PriceComparison:
        return self.pricing.compare_prices(product_id, exclude_supplier_id)

    def prices_for_supplier(self, supplier_id: int) -> list[PriceInfo]:
        return self.pricing.prices_for_supplier(supplier_id)

    def link_product(self, product_id: int, supplier_id: int, **fields: Any) -> ProductSupplier:
        with self._unit_of_work():
            link = self.pricing.link_product(product_id, supplier_id, **fields)
        return link

    def update_cost(self, product_id: int, supplier_id: int, new_cost: Decimal, actor: str | None = None) -> ProductSupplier:
        with self._unit_of_work():
            link = self.pricing.update_cost(product_id, supplier_id, new_cost, actor)
        return link

    def sync_product_supplier(
        self,
        product_id: int,
        supplier_id: int,
        *,
        supplier_sku: str | None = None,
        unit_price: Decimal | None = None,
        actor: str | None = None,
    ) -> ProductSupplier:
        with self._unit_of_work():
            link = self.pricing.sync_product_supplier(
                product_id, supplier_id, supplier_sku=supplier_sku, unit_price=unit_price, actor=actor
            )
        return link

    def links_for_supplier(self, supplier_id: int) -> list[ProductSupplier]:
        return self.pricing.links_for_supplier(supplier_id)

    # ---------- Fournisseurs ----------
    def create_supplier(self, data: SupplierInput) -> Supplier:
        with self._unit_of_work():
            supplier = self.suppliers.create(data)
        return supplier

    def update_supplier(self, supplier_id: int, changes: dict[str, Any]) -> Supplier:
        with self._unit_of_work():
            supplier = self.suppliers.update(supplier_id, changes)
        return supplier

    def deactivate_supplier(self, supplier_id: int) -> Supplier:
        with self._unit_of_work():
            supplier = self.suppliers.deactivate(supplier_id)
        return supplier

    # ---------- Ledger ----------
    def movements_for_product(
        self, product_id: int, *, limit: int = 100, offset: int = 0, stock_only: bool = False
    ) -> list[InventoryMovement]:
        return self.ledger.movements_for_product(product_id, limit=limit, offset=offset, stock_only=stock_only)

    def movements_for_reference(self, reference_id: str, *, stock_only: bool = False) -> list[InventoryMovement]:
        return self.ledger.movements_for_reference(reference_id, stock_only=stock_only)

    # ---------- Présentation ----------
    def actor(self, actor_id: str | None) -> ActorRef:
        return resolve_actor(self.identity, actor_id)
