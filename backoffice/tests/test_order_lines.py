from decimal import Decimal

import pytest

from backoffice.app.core.errors import NotFoundError, ValidationError
from backoffice.app.db.models.core_types import LineStatus, MovementType, OrderStatus, ReceiptPolicy
from backoffice.services.order_lines import pending_quantity, recalc_order_totals
from backoffice.services.procurement import ProcurementService


def _shipped(procurement, order):
    procurement.update_order_status(order.id, OrderStatus.confirmed)
    return procurement.update_order_status(order.id, OrderStatus.shipped)


def test_pending_quantity_never_negative():
    assert pending_quantity(10, 4) == 6
    assert pending_quantity(10, 10) == 0
    assert pending_quantity(3, 5) == 0


def test_recalc_totals_is_idempotent(procurement, make_supplier, make_order):
    order = make_order(make_supplier(), quantity=3, unit_price="9.99")

    first = (order.subtotal, order.tax_total, order.total)
    recalc_order_totals(order)
    recalc_order_totals(order)

    assert (order.subtotal, order.tax_total, order.total) == first
    assert order.total == Decimal("29.97")


def test_partial_receipt_math(procurement, make_supplier, make_order, world):
    """
    GIVEN une ligne de 10 sur une commande shipped
    WHEN  réception de 4
    THEN  received=4, pending=6, ligne partial, un mouvement supplier_receipt sans effet stock
    """
    order = _shipped(procurement, make_order(make_supplier(), quantity=10))
    line_id = order.lines[0].id

    line = procurement.receive_line(line_id, 4, notes="carton abîmé", actor=world.actor)

    assert line.quantity_received == 4
    assert line.quantity_pending == 6
    assert line.line_status is LineStatus.partial
    assert line.received_by == world.actor
    assert line.reception_notes == "carton abîmé"

    receipts = [
        m
        for m in procurement.movements_for_reference(str(order.id))
        if m.meta and m.meta.get("stock_applied") is False
    ]
    assert len(receipts) == 1
    assert receipts[0].movement_type is MovementType.supplier_receipt
    assert receipts[0].quantity == 4
    assert receipts[0].order_line_id == line_id


def test_full_receipt_marks_line_received(procurement, make_supplier, make_order):
    order = _shipped(procurement, make_order(make_supplier(), quantity=10))

    procurement.receive_line(order.lines[0].id, 4)
    line = procurement.receive_line(order.lines[0].id, 6)

    assert line.quantity_received == 10
    assert line.quantity_pending == 0
    assert line.line_status is LineStatus.received


@pytest.mark.parametrize("qty", [0, -1])
def test_non_positive_receipt_is_rejected(procurement, make_supplier, make_order, qty):
    order = make_order(make_supplier())

    with pytest.raises(ValidationError) as exc:
        procurement.receive_line(order.lines[0].id, qty)
    assert exc.value.field == "quantity_received"


def test_receipt_above_pending_is_rejected(procurement, make_supplier, make_order):
    order = _shipped(procurement, make_order(make_supplier(), quantity=10))
    procurement.receive_line(order.lines[0].id, 8)

    with pytest.raises(ValidationError):
        procurement.receive_line(order.lines[0].id, 3)

    line = procurement.get_order(order.id).lines[0]
    assert line.quantity_received == 8
    assert line.quantity_pending == 2


def test_unknown_line(procurement, world):
    with pytest.raises(NotFoundError):
        procurement.receive_line(424242, 1)


def test_any_receipt_moves_shipped_order_to_received(procurement, make_supplier, make_order, world, stock):
    order = _shipped(procurement, make_order(make_supplier(), quantity=10))
    assert stock(world.product.id, world.warehouse.id) == 60

    procurement.receive_line(order.lines[0].id, 1, actor=world.actor)

    order = procurement.get_order(order.id)
    assert order.status is OrderStatus.received
    assert order.received_by == world.actor
    # déjà synchronisé à la confirmation
    assert stock(world.product.id, world.warehouse.id) == 60


def test_receipt_on_draft_order_receives_and_syncs(procurement, make_supplier, make_order, world, stock):
    order = make_order(make_supplier(), quantity=10)

    procurement.receive_line(order.lines[0].id, 10)

    assert procurement.get_order(order.id).status is OrderStatus.received
    assert stock(world.product.id, world.warehouse.id) == 60


def test_all_lines_received_policy(db_session, settings, make_supplier, make_order):
    settings.RECEIPT_POLICY = ReceiptPolicy.all_lines_received
    svc = ProcurementService(db_session, settings)
    order = _shipped(svc, make_order(make_supplier(), quantity=10))

    svc.receive_line(order.lines[0].id, 4)
    assert svc.get_order(order.id).status is OrderStatus.partially_received

    svc.receive_line(order.lines[0].id, 6)
    assert svc.get_order(order.id).status is OrderStatus.received


def test_incident_forces_order_status(procurement, make_supplier, make_order, world):
    """draft -> incident n'est pas dans la table : le passage est forcé."""
    order = make_order(make_supplier())

    line = procurement.set_line_incident(order.lines[0].id, True, notes="colis manquant", actor=world.actor)

    assert line.line_status is LineStatus.incident
    assert line.meta["incident"]["has_incident"] is True
    assert line.meta["incident"]["by"] == world.actor
    assert procurement.get_order(order.id).status is OrderStatus.incident


def test_clearing_incident_keeps_order_status(procurement, make_supplier, make_order):
    order = make_order(make_supplier())
    procurement.set_line_incident(order.lines[0].id, True)

    line = procurement.set_line_incident(order.lines[0].id, False)

    assert line.line_status is LineStatus.pending
    assert procurement.get_order(order.id).status is OrderStatus.incident


def test_incident_does_not_reopen_terminal_order(procurement, make_supplier, make_order):
    order = make_order(make_supplier(), quantity=2)
    procurement.receive_line(order.lines[0].id, 2)
    assert procurement.get_order(order.id).status is OrderStatus.received

    procurement.set_line_incident(order.lines[0].id, True)

    assert procurement.get_order(order.id).status is OrderStatus.received


def test_stock_only_movements_count_units_once(procurement, make_supplier, make_order, world):
    """
    GIVEN une réception complète sur une commande draft (réception + synchro stock)
    THEN  deux supplier_receipt au ledger, un seul compté avec stock_only
    """
    order = make_order(make_supplier(), quantity=10)
    procurement.receive_line(order.lines[0].id, 10)

    every = procurement.movements_for_reference(str(order.id))
    applied = procurement.movements_for_reference(str(order.id), stock_only=True)

    assert [m.movement_type for m in every] == [MovementType.supplier_receipt] * 2
    assert [(m.quantity, m.meta["stock_applied"]) for m in applied] == [(10, True)]
    assert sum(m.quantity for m in procurement.movements_for_product(world.product.id, stock_only=True)) == 10
