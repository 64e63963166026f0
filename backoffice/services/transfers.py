"""
Transfert de stock entre deux locations, matérialisé comme une commande
de type "transfer" passée au fournisseur virtuel TRANSFER.

Étapes (chacune committée, compensée en ordre inverse en cas d'échec) :
    1. ensure_transfer_supplier
    2. create_transfer_order   (commande confirmed + 1 ligne à prix nul)
    3. execute_stock_transfer  (source -qty, destination +qty, 2 mouvements)
    4. mark_shipped

La compensation de l'étape 3 n'efface rien dans le ledger : elle ajoute des
mouvements "adjustment" inverses.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from backoffice.app.core.errors import InsufficientStockError, ValidationError
from backoffice.app.db.models.core_types import MovementType, OrderStatus, OrderType
from backoffice.app.db.models.models_v1 import SupplierOrder, SupplierOrderLine, utcnow
from backoffice.services.inventory import (
    InventoryService,
    LevelChange,
    LocationDirectory,
    LocationRef,
    ProductCatalog,
    ProductRef,
    StockIncrement,
    increment_stock,
    revert_increment,
)
from backoffice.services.ledger import MovementDraft, MovementLedger
from backoffice.services.order_lines import NewLine, OrderLineLedger
from backoffice.services.orders import OrderLifecycle, make_display_id
from backoffice.services.saga import Saga, SagaStep
from backoffice.services.suppliers import SupplierRegistry

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "transfer_order"


@dataclass
class TransferRequest:
    product_id: int
    from_location_id: int
    to_location_id: int
    quantity: int
    # par défaut : l'inventory item du produit
    inventory_item_id: int | None = None
    performed_by: str | None = None
    reason: str | None = None
    notes: str | None = None
    expected_delivery_date: datetime | None = None
    idempotency_key: str | None = None


@dataclass
class TransferResult:
    transfer_id: str
    order: SupplierOrder
    quantity: int
    source_location_name: str | None
    destination_location_name: str | None
    stock_before: dict[str, int]
    stock_after: dict[str, int]
    replayed: bool = False


@dataclass
class TransferStatistics:
    total_transfers: int
    total_units: int
    by_status: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class _Resolved:
    request: TransferRequest
    transfer_id: str
    product: ProductRef
    inventory_item_id: int
    source: LocationRef
    destination: LocationRef


class TransferAsOrderSaga:
    def __init__(
        self,
        db: Session,
        *,
        suppliers: SupplierRegistry,
        inventory: InventoryService,
        products: ProductCatalog,
        locations: LocationDirectory,
        ledger: MovementLedger,
        lines: OrderLineLedger,
        lifecycle: OrderLifecycle,
        supplier_code: str = "TRANSFER",
        expected_delivery_days: int = 1,
        currency_code: str = "EUR",
    ):
        self.db = db
        self.suppliers = suppliers
        self.inventory = inventory
        self.products = products
        self.locations = locations
        self.ledger = ledger
        self.lines = lines
        self.lifecycle = lifecycle
        self.supplier_code = supplier_code
        self.expected_delivery_days = expected_delivery_days
        self.currency_code = currency_code

    # ---------- Entrée ----------
    def transfer_stock(self, request: TransferRequest) -> TransferResult:
        if request.quantity <= 0:
            raise ValidationError("quantity must be greater than 0", field="quantity")
        if request.from_location_id == request.to_location_id:
            raise ValidationError("from_location_id and to_location_id must differ", field="to_location_id")

        if request.idempotency_key:
            existing = self._find_by_key(request.idempotency_key)
            if existing:
                return self._replay(existing)

        product = self.products.resolve(request.product_id)
        resolved = _Resolved(
            request=request,
            transfer_id=f"TRF-{uuid.uuid4().hex[:16]}",
            product=product,
            inventory_item_id=request.inventory_item_id or product.inventory_item_id,
            source=self.locations.retrieve(request.from_location_id),
            destination=self.locations.retrieve(request.to_location_id),
        )

        # contrôle indicatif, refait par l'étape 3 au moment d'écrire
        self.validate_stock(resolved.inventory_item_id, resolved.source.id, request.quantity)

        saga = Saga(
            name=f"transfer {resolved.transfer_id}",
            steps=self._steps(),
            commit=self.db.commit,
            rollback=self.db.rollback,
        )
        ctx = saga.run({"transfer": resolved})

        order = self._load(ctx["create_transfer_order"])
        snapshot = ctx["execute_stock_transfer"]
        logger.info(
            "Transfer %s done: %s x item %s, %s -> %s (order %s)",
            resolved.transfer_id,
            request.quantity,
            resolved.inventory_item_id,
            resolved.source.name,
            resolved.destination.name,
            order.display_id,
        )
        return TransferResult(
            transfer_id=resolved.transfer_id,
            order=order,
            quantity=request.quantity,
            source_location_name=resolved.source.name,
            destination_location_name=resolved.destination.name,
            stock_before=snapshot["stock_before"],
            stock_after=snapshot["stock_after"],
        )

    def validate_stock(self, inventory_item_id: int, location_id: int, quantity: int) -> int:
        level = self.inventory.list_level(inventory_item_id, location_id)
        available = level.stocked_quantity if level else 0
        if level is None or available < quantity:
            raise InsufficientStockError(location_id=location_id, available=available, requested=quantity)
        return available

    def _steps(self) -> list[SagaStep]:
        return [
            SagaStep("ensure_transfer_supplier", self._ensure_supplier, self._undo_supplier),
            SagaStep("create_transfer_order", self._create_order, self._undo_order),
            SagaStep("execute_stock_transfer", self._execute_transfer, self._undo_transfer),
            SagaStep("mark_shipped", self._mark_shipped),
        ]

    # ---------- Étape 1 ----------
    def _ensure_supplier(self, ctx: dict[str, Any]):
        supplier, activated = self.suppliers.ensure_transfer_supplier(self.supplier_code)
        ctx["supplier_id"] = supplier.id
        return supplier.id, {"supplier_id": supplier.id, "activated": activated}

    def _undo_supplier(self, data: dict[str, Any]) -> None:
        if data["activated"]:
            self.suppliers.deactivate(data["supplier_id"])

    # ---------- Étape 2 ----------
    def _create_order(self, ctx: dict[str, Any]):
        t: _Resolved = ctx["transfer"]
        req = t.request
        now = utcnow()

        order = SupplierOrder(
            supplier_id=ctx["supplier_id"],
            order_type=OrderType.transfer,
            status=OrderStatus.confirmed,
            order_date=now,
            confirmed_at=now,
            expected_delivery_date=req.expected_delivery_date
            or now + timedelta(days=self.expected_delivery_days),
            currency_code=self.currency_code,
            subtotal=Decimal("0"),
            tax_total=Decimal("0"),
            discount_total=Decimal("0"),
            total=Decimal("0"),
            source_location_id=t.source.id,
            source_location_name=t.source.name,
            destination_location_id=t.destination.id,
            destination_location_name=t.destination.name,
            reference=t.transfer_id,
            notes=req.notes or f"Transfer of {req.quantity} x {t.product.title}",
            internal_notes=req.reason or "Internal stock transfer",
            created_by=req.performed_by,
            idempotency_key=req.idempotency_key,
            meta={
                "transfer_id": t.transfer_id,
                "transfer_type": "internal",
                "inventory_item_id": t.inventory_item_id,
            },
        )
        self.db.add(order)
        self.db.flush()
        order.display_id = make_display_id(order)

        line = self.lines.add_line(
            order,
            NewLine(
                product_id=t.product.product_id,
                product_title=t.product.title,
                supplier_sku=t.product.sku,
                quantity_ordered=req.quantity,
                unit_price=Decimal("0"),
                notes=f"Transfer from {t.source.name} to {t.destination.name}",
                meta={"transfer_line": True, "inventory_item_id": t.inventory_item_id},
            ),
        )
        ctx["order_line_id"] = line.id
        return order.id, {"order_id": order.id}

    def _undo_order(self, data: dict[str, Any]) -> None:
        order = self.db.get(SupplierOrder, data["order_id"])
        if order is None:
            return
        # les lignes suivent (delete-orphan)
        self.db.delete(order)
        self.db.flush()

    # ---------- Étape 3 ----------
    def _execute_transfer(self, ctx: dict[str, Any]):
        t: _Resolved = ctx["transfer"]
        qty = t.request.quantity
        item = t.inventory_item_id

        source_before = self.validate_stock(item, t.source.id, qty)
        self.inventory.update_levels(
            [LevelChange(inventory_item_id=item, location_id=t.source.id, stocked_quantity=source_before - qty)]
        )
        inc = increment_stock(self.inventory, inventory_item_id=item, location_id=t.destination.id, quantity=qty)

        common = dict(
            product_id=t.product.product_id,
            product_title=t.product.title,
            reference_id=t.transfer_id,
            reference_type=REFERENCE_TYPE,
            order_line_id=ctx["order_line_id"],
            from_location_id=t.source.id,
            from_location_name=t.source.name,
            to_location_id=t.destination.id,
            to_location_name=t.destination.name,
            performed_by=t.request.performed_by,
        )
        self.ledger.record(
            MovementDraft(movement_type=MovementType.transfer_out, quantity=-qty, reason="Transfer order shipment", **common)
        )
        self.ledger.record(
            MovementDraft(movement_type=MovementType.transfer_in, quantity=qty, reason="Transfer order receipt", **common)
        )

        snapshot = {
            "stock_before": {"source": source_before, "destination": inc.quantity_before},
            "stock_after": {"source": source_before - qty, "destination": inc.quantity_after},
        }
        order = self.db.get(SupplierOrder, ctx["create_transfer_order"])
        order.meta = {**(order.meta or {}), **snapshot}
        self.db.flush()

        return snapshot, {
            "transfer": t,
            "source_before": source_before,
            "destination": inc,
        }

    def _undo_transfer(self, data: dict[str, Any]) -> None:
        t: _Resolved = data["transfer"]
        inc: StockIncrement = data["destination"]
        qty = t.request.quantity

        self.inventory.update_levels(
            [
                LevelChange(
                    inventory_item_id=t.inventory_item_id,
                    location_id=t.source.id,
                    stocked_quantity=data["source_before"],
                )
            ]
        )
        revert_increment(self.inventory, inc)

        reason = f"Compensation of transfer {t.transfer_id}"
        for location, delta in ((t.source, qty), (t.destination, -qty)):
            self.ledger.record(
                MovementDraft(
                    movement_type=MovementType.adjustment,
                    product_id=t.product.product_id,
                    product_title=t.product.title,
                    quantity=delta,
                    reference_id=t.transfer_id,
                    reference_type=REFERENCE_TYPE,
                    from_location_id=location.id if delta < 0 else None,
                    from_location_name=location.name if delta < 0 else None,
                    to_location_id=location.id if delta > 0 else None,
                    to_location_name=location.name if delta > 0 else None,
                    reason=reason,
                    performed_by=t.request.performed_by,
                    meta={"compensation": True},
                )
            )
        logger.warning("Transfer %s rolled back, stock restored", t.transfer_id)

    # ---------- Étape 4 ----------
    def _mark_shipped(self, ctx: dict[str, Any]):
        t: _Resolved = ctx["transfer"]
        order = self._load(ctx["create_transfer_order"])
        self.lifecycle.apply_status(order, OrderStatus.shipped, t.request.performed_by)
        return order.id, None

    # ---------- Lectures ----------
    def _load(self, order_id: int) -> SupplierOrder:
        return self.db.get(SupplierOrder, order_id, options=[selectinload(SupplierOrder.lines)])

    def _find_by_key(self, key: str) -> SupplierOrder | None:
        return self.db.execute(
            select(SupplierOrder)
            .options(selectinload(SupplierOrder.lines))
            .where(SupplierOrder.idempotency_key == key)
        ).scalar_one_or_none()

    def _replay(self, order: SupplierOrder) -> TransferResult:
        meta = order.meta or {}
        if order.order_type is not OrderType.transfer or "stock_after" not in meta:
            raise ValidationError(
                f"Idempotency-Key already used by order {order.display_id} ({order.status.value})",
                field="idempotency_key",
            )
        logger.info("Transfer %s replayed (order %s)", meta.get("transfer_id"), order.display_id)
        return TransferResult(
            transfer_id=meta["transfer_id"],
            order=order,
            quantity=sum(l.quantity_ordered for l in order.lines),
            source_location_name=order.source_location_name,
            destination_location_name=order.destination_location_name,
            stock_before=meta["stock_before"],
            stock_after=meta["stock_after"],
            replayed=True,
        )

    def transfer_statistics(self) -> TransferStatistics:
        by_status = {
            status.value: int(count)
            for status, count in self.db.execute(
                select(SupplierOrder.status, func.count(SupplierOrder.id))
                .where(SupplierOrder.order_type == OrderType.transfer)
                .group_by(SupplierOrder.status)
            ).all()
        }
        total_units = self.db.execute(
            select(func.coalesce(func.sum(SupplierOrderLine.quantity_ordered), 0))
            .join(SupplierOrder, SupplierOrder.id == SupplierOrderLine.order_id)
            .where(SupplierOrder.order_type == OrderType.transfer)
            .where(SupplierOrder.status != OrderStatus.cancelled)
        ).scalar_one()
        return TransferStatistics(
            total_transfers=sum(by_status.values()),
            total_units=int(total_units),
            by_status=by_status,
        )
