"""
Commandes fournisseur : création, lecture, changements de statut.

Entrer dans confirmed / received déclenche la synchro stock des lignes
produit d'une commande fournisseur. Un échec de synchro est loggé et
n'annule PAS le changement de statut (fenêtre d'incohérence acceptée).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from backoffice.app.core.errors import NotFoundError, ValidationError
from backoffice.app.db.models.core_types import (
    LineStatus,
    MovementType,
    OrderStatus,
    OrderType,
)
from backoffice.app.db.models.models_v1 import SupplierOrder, utcnow
from backoffice.services.inventory import (
    InventoryService,
    LocationDirectory,
    ProductCatalog,
    increment_stock,
)
from backoffice.services.ledger import MovementDraft, MovementLedger
from backoffice.services.order_lines import NewLine, OrderLineLedger
from backoffice.services.order_state import (
    STOCK_SYNC_STATUSES,
    ensure_transition,
    valid_next_statuses,
)
from backoffice.services.suppliers import SupplierRegistry

logger = logging.getLogger(__name__)

DISPLAY_PREFIX = {
    OrderType.supplier: "PO",
    OrderType.transfer: "TO",
}

STOCK_SYNCED_KEY = "stock_synced_qty"


def make_display_id(order: SupplierOrder) -> str:
    return f"{DISPLAY_PREFIX[order.order_type]}-{int(order.id):06d}"


class OrderLifecycle:
    """Application d'un statut : horodatages, annulation des lignes, synchro stock."""

    def __init__(
        self,
        db: Session,
        *,
        inventory: InventoryService,
        products: ProductCatalog,
        locations: LocationDirectory,
        ledger: MovementLedger,
        default_location_id: int | None = None,
    ):
        self.db = db
        self.inventory = inventory
        self.products = products
        self.locations = locations
        self.ledger = ledger
        self.default_location_id = default_location_id

    def apply_status(
        self,
        order: SupplierOrder,
        new_status: OrderStatus,
        actor: str | None = None,
        *,
        force: bool = False,
    ) -> SupplierOrder:
        new_status = OrderStatus(new_status)
        if not force:
            ensure_transition(order.status, new_status)

        previous = order.status
        order.status = new_status
        now = utcnow()

        if new_status is OrderStatus.confirmed:
            order.confirmed_at = now
        elif new_status is OrderStatus.shipped:
            order.shipped_at = now
        elif new_status is OrderStatus.received:
            order.received_at = now
            order.received_by = actor
        elif new_status is OrderStatus.cancelled:
            for line in order.lines:
                if line.line_status is not LineStatus.received:
                    line.line_status = LineStatus.cancelled

        self.db.flush()
        logger.info(
            "Order %s status %s -> %s (actor=%s%s)",
            order.display_id,
            previous.value,
            new_status.value,
            actor,
            ", forced" if force else "",
        )

        if new_status in STOCK_SYNC_STATUSES:
            self.sync_stock(order, actor)
        return order

    def sync_stock(self, order: SupplierOrder, actor: str | None) -> None:
        if order.order_type is OrderType.transfer:
            # le saga a déjà déplacé le stock
            return
        if order.order_type is not OrderType.supplier:
            raise ValueError(f"Unknown order type: {order.order_type}")

        location_id = order.destination_location_id or self.default_location_id
        if location_id is None:
            logger.warning("Order %s has no destination location, stock sync skipped", order.display_id)
            return

        try:
            with self.db.begin_nested():
                self._apply_stock_increments(order, location_id, actor)
        except Exception:
            logger.exception(
                "Stock sync failed for order %s (status %s kept)", order.display_id, order.status.value
            )

    def _apply_stock_increments(self, order: SupplierOrder, location_id: int, actor: str | None) -> None:
        location = self.locations.retrieve(location_id)
        for line in order.lines:
            if line.product_id is None or line.line_status is LineStatus.cancelled:
                continue

            synced = int((line.meta or {}).get(STOCK_SYNCED_KEY, 0))
            delta = line.quantity_ordered - synced
            if delta <= 0:
                continue

            product = self.products.resolve(line.product_id)
            inc = increment_stock(
                self.inventory,
                inventory_item_id=product.inventory_item_id,
                location_id=location.id,
                quantity=delta,
            )
            line.meta = {**(line.meta or {}), STOCK_SYNCED_KEY: synced + delta}
            self.ledger.record(
                MovementDraft(
                    movement_type=MovementType.supplier_receipt,
                    product_id=line.product_id,
                    product_title=line.product_title,
                    quantity=delta,
                    unit_cost=line.unit_price,
                    reference_id=str(order.id),
                    reference_type="supplier_order",
                    order_line_id=line.id,
                    to_location_id=location.id,
                    to_location_name=location.name,
                    reason=f"Stock sync on order {order.display_id} ({order.status.value})",
                    performed_by=actor,
                    meta={"stock_applied": True, "stock_before": inc.quantity_before, "stock_after": inc.quantity_after},
                )
            )
            logger.info(
                "Stock +%s item=%s location=%s (%s -> %s)",
                delta,
                product.inventory_item_id,
                location.id,
                inc.quantity_before,
                inc.quantity_after,
            )


@dataclass
class OrderFilters:
    status: OrderStatus | None = None
    supplier_id: int | None = None
    order_type: OrderType | None = None
    limit: int = 20
    offset: int = 0


class SupplierOrderService:
    def __init__(
        self,
        db: Session,
        *,
        suppliers: SupplierRegistry,
        lifecycle: OrderLifecycle,
        lines: OrderLineLedger,
        locations: LocationDirectory,
        currency_code: str = "EUR",
    ):
        self.db = db
        self.suppliers = suppliers
        self.lifecycle = lifecycle
        self.lines = lines
        self.locations = locations
        self.currency_code = currency_code

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
        supplier = self.suppliers.get_active(supplier_id)
        lines = list(lines)
        for ln in lines:
            if ln.quantity_ordered <= 0:
                raise ValidationError("quantity_ordered must be greater than 0", field="quantity_ordered")
            if ln.unit_price < 0:
                raise ValidationError("unit_price must be >= 0", field="unit_price")

        destination_name = None
        if destination_location_id is not None:
            destination_name = self.locations.retrieve(destination_location_id).name

        order = SupplierOrder(
            supplier_id=supplier.id,
            order_type=OrderType.supplier,
            status=OrderStatus.draft,
            order_date=utcnow(),
            expected_delivery_date=expected_delivery_date,
            currency_code=supplier.currency_code or self.currency_code,
            destination_location_id=destination_location_id,
            destination_location_name=destination_name,
            reference=reference,
            notes=notes,
            internal_notes=internal_notes,
            created_by=created_by,
        )
        self.db.add(order)
        self.db.flush()  # get order.id
        order.display_id = make_display_id(order)

        for ln in lines:
            self.lines.add_line(order, ln)

        self.db.flush()
        logger.info(
            "Order %s created for supplier %s (%s lines, total=%s)",
            order.display_id,
            supplier.id,
            len(lines),
            order.total,
        )
        return order

    def get_order(self, order_id: int) -> SupplierOrder:
        order = self.db.get(SupplierOrder, order_id, options=[selectinload(SupplierOrder.lines)])
        if not order:
            raise NotFoundError("SupplierOrder", order_id)
        return order

    def list_orders(self, filters: OrderFilters | None = None) -> list[SupplierOrder]:
        f = filters or OrderFilters()
        stmt = select(SupplierOrder).order_by(SupplierOrder.id.desc())
        if f.status is not None:
            stmt = stmt.where(SupplierOrder.status == f.status)
        if f.supplier_id is not None:
            stmt = stmt.where(SupplierOrder.supplier_id == f.supplier_id)
        if f.order_type is not None:
            stmt = stmt.where(SupplierOrder.order_type == f.order_type)
        stmt = stmt.offset(f.offset).limit(f.limit)
        return list(self.db.execute(stmt).scalars().all())

    def add_line(self, order_id: int, data: NewLine):
        return self.lines.add_line(self.get_order(order_id), data)

    def update_order_status(self, order_id: int, new_status: OrderStatus, actor: str | None = None) -> SupplierOrder:
        order = self.get_order(order_id)
        return self.lifecycle.apply_status(order, new_status, actor)

    def valid_statuses(self, order_id: int) -> tuple[OrderStatus, list[OrderStatus]]:
        order = self.get_order(order_id)
        return order.status, valid_next_statuses(order.status)
