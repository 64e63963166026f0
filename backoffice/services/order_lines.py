"""
Lignes de commande : quantités commandées / reçues / en attente, incidents,
et totaux de la commande.

Invariants :
    quantity_pending = max(0, quantity_ordered - quantity_received)
    quantity_received <= quantity_ordered
    total_price = unit_price * quantity_ordered
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from backoffice.app.core.errors import NotFoundError, ValidationError
from backoffice.app.db.models.core_types import (
    LineStatus,
    MovementType,
    OrderStatus,
    ReceiptPolicy,
)
from backoffice.app.db.models.models_v1 import SupplierOrder, SupplierOrderLine, utcnow
from backoffice.services.ledger import MovementDraft, MovementLedger
from backoffice.services.order_state import is_terminal, validate_transition

if TYPE_CHECKING:
    from backoffice.services.orders import OrderLifecycle

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# Extension : pas de calcul de taxe pour l'instant
TAX_TOTAL = Decimal("0")


@dataclass
class NewLine:
    product_title: str
    quantity_ordered: int
    unit_price: Decimal
    product_id: int | None = None
    supplier_sku: str | None = None
    tax_rate: Decimal = Decimal("0")
    discount_rate: Decimal = Decimal("0")
    notes: str | None = None
    meta: dict[str, Any] | None = field(default=None)


def pending_quantity(ordered: int, received: int) -> int:
    return max(0, ordered - received)


def recalc_order_totals(order: SupplierOrder) -> SupplierOrder:
    """Idempotent : sans mutation des lignes, deux appels donnent le même résultat."""
    subtotal = sum((Decimal(l.total_price) for l in order.lines), Decimal("0")).quantize(CENTS)
    order.subtotal = subtotal
    order.tax_total = TAX_TOTAL
    order.total = (subtotal + TAX_TOTAL).quantize(CENTS)
    return order


class OrderLineLedger:
    def __init__(
        self,
        db: Session,
        *,
        ledger: MovementLedger,
        lifecycle: "OrderLifecycle",
        receipt_policy: ReceiptPolicy = ReceiptPolicy.any_receipt,
    ):
        self.db = db
        self.ledger = ledger
        self.lifecycle = lifecycle
        self.receipt_policy = receipt_policy

    def get_line(self, line_id: int) -> SupplierOrderLine:
        line = self.db.get(SupplierOrderLine, line_id)
        if not line:
            raise NotFoundError("SupplierOrderLine", line_id)
        return line

    def add_line(self, order: SupplierOrder, data: NewLine) -> SupplierOrderLine:
        if is_terminal(order.status):
            raise ValidationError(f"Cannot add lines to a {order.status.value} order")
        if data.quantity_ordered <= 0:
            raise ValidationError("quantity_ordered must be greater than 0", field="quantity_ordered")
        unit_price = Decimal(data.unit_price)
        if unit_price < 0:
            raise ValidationError("unit_price must be >= 0", field="unit_price")

        line = SupplierOrderLine(
            product_id=data.product_id,
            product_title=data.product_title,
            supplier_sku=data.supplier_sku,
            quantity_ordered=data.quantity_ordered,
            quantity_received=0,
            quantity_pending=data.quantity_ordered,
            unit_price=unit_price,
            tax_rate=Decimal(data.tax_rate),
            discount_rate=Decimal(data.discount_rate),
            total_price=(unit_price * data.quantity_ordered).quantize(CENTS),
            line_status=LineStatus.pending,
            notes=data.notes,
            meta=data.meta,
        )
        order.lines.append(line)
        recalc_order_totals(order)
        self.db.flush()
        return line

    def receive_line(
        self,
        line_id: int,
        quantity_received: int,
        notes: str | None = None,
        actor: str | None = None,
    ) -> SupplierOrderLine:
        line = self.get_line(line_id)
        order = line.order

        if quantity_received <= 0:
            raise ValidationError("quantity_received must be greater than 0", field="quantity_received")
        if line.line_status is LineStatus.cancelled or order.status is OrderStatus.cancelled:
            raise ValidationError(f"Line {line_id} is cancelled")
        if quantity_received > line.quantity_pending:
            raise ValidationError(
                f"Cannot receive {quantity_received}, only {line.quantity_pending} pending on line {line_id}",
                field="quantity_received",
            )

        line.quantity_received += quantity_received
        line.quantity_pending = pending_quantity(line.quantity_ordered, line.quantity_received)
        line.line_status = (
            LineStatus.received if line.quantity_received == line.quantity_ordered else LineStatus.partial
        )
        line.received_at = utcnow()
        line.received_by = actor
        line.reception_notes = notes
        self.db.flush()

        if line.product_id is not None:
            self.ledger.record(
                MovementDraft(
                    movement_type=MovementType.supplier_receipt,
                    product_id=line.product_id,
                    product_title=line.product_title,
                    quantity=quantity_received,
                    unit_cost=Decimal(line.unit_price),
                    reference_id=str(order.id),
                    reference_type="supplier_order",
                    order_line_id=line.id,
                    to_location_id=order.destination_location_id,
                    to_location_name=order.destination_location_name,
                    reason=f"Receipt from supplier order {order.display_id}",
                    notes=notes,
                    performed_by=actor,
                    # la réception physique ne touche pas le stock (synchro au changement de statut)
                    meta={"stock_applied": False},
                )
            )

        logger.info(
            "Line %s received +%s (%s/%s) status=%s",
            line.id,
            quantity_received,
            line.quantity_received,
            line.quantity_ordered,
            line.line_status.value,
        )
        self._reevaluate_order(order, actor)
        return line

    def _reevaluate_order(self, order: SupplierOrder, actor: str | None) -> None:
        total_received = sum(l.quantity_received for l in order.lines)
        if total_received == 0 or is_terminal(order.status):
            return

        open_lines = [l for l in order.lines if l.line_status is not LineStatus.cancelled]
        all_received = all(l.quantity_received == l.quantity_ordered for l in open_lines)

        if self.receipt_policy is ReceiptPolicy.any_receipt or all_received:
            target = OrderStatus.received
        elif self.receipt_policy is ReceiptPolicy.all_lines_received:
            target = OrderStatus.partially_received
        else:
            raise ValueError(f"Unknown receipt policy: {self.receipt_policy}")

        if order.status is target or not validate_transition(order.status, target):
            return
        self.lifecycle.apply_status(order, target, actor)

    def update_incident(
        self,
        line_id: int,
        has_incident: bool,
        notes: str | None = None,
        actor: str | None = None,
    ) -> SupplierOrderLine:
        line = self.get_line(line_id)
        order = line.order
        if line.line_status is LineStatus.cancelled:
            raise ValidationError(f"Line {line_id} is cancelled")

        line.line_status = LineStatus.incident if has_incident else LineStatus.pending
        line.meta = {
            **(line.meta or {}),
            "incident": {
                "has_incident": has_incident,
                "notes": notes,
                "by": actor,
                "at": utcnow().isoformat(),
            },
        }
        if notes:
            line.notes = notes
        self.db.flush()

        any_incident = any(l.line_status is LineStatus.incident for l in order.lines)
        if any_incident and not is_terminal(order.status) and order.status is not OrderStatus.incident:
            # forcé : hors table de transitions (ex. draft -> incident)
            self.lifecycle.apply_status(order, OrderStatus.incident, actor, force=True)
        return line
