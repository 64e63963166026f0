import logging

import pytest
from sqlalchemy import select

from backoffice.app.core.errors import InsufficientStockError, NotFoundError, ValidationError
from backoffice.app.db.models.core_types import (
    LineStatus,
    MovementType,
    OrderStatus,
    OrderType,
    SupplierType,
)
from backoffice.app.db.models.models_v1 import InventoryMovement, Location, StockLevel, Supplier, SupplierOrder
from backoffice.services.transfers import TransferRequest


def _request(world, quantity=10, **kwargs):
    return TransferRequest(
        product_id=world.product.id,
        from_location_id=world.warehouse.id,
        to_location_id=world.shop.id,
        quantity=quantity,
        performed_by=world.actor,
        **kwargs,
    )


def _transfer_orders(db):
    return db.execute(
        select(SupplierOrder).where(SupplierOrder.order_type == OrderType.transfer)
    ).scalars().all()


def _movements(db):
    return db.execute(select(InventoryMovement).order_by(InventoryMovement.id)).scalars().all()


def test_transfer_moves_stock_and_ships_order(procurement, world, stock, db_session):
    """
    GIVEN Warehouse=50, Shop=5
    WHEN  transfert de 10 Warehouse -> Shop
    THEN  Warehouse=40, Shop=15, commande transfer shipped, 2 mouvements
    """
    result = procurement.transfer_stock(_request(world, 10))

    assert stock(world.product.id, world.warehouse.id) == 40
    assert stock(world.product.id, world.shop.id) == 15
    assert result.stock_before == {"source": 50, "destination": 5}
    assert result.stock_after == {"source": 40, "destination": 15}
    assert result.quantity == 10
    assert result.source_location_name == "Warehouse"
    assert result.destination_location_name == "Shop"
    assert result.transfer_id.startswith("TRF-")
    assert result.replayed is False

    order = result.order
    assert order.order_type is OrderType.transfer
    assert order.status is OrderStatus.shipped
    assert order.display_id.startswith("TO-")
    assert order.confirmed_at is not None and order.shipped_at is not None
    assert order.total == 0
    assert order.reference == result.transfer_id
    assert [(l.quantity_ordered, l.unit_price) for l in order.lines] == [(10, 0)]

    supplier = db_session.get(Supplier, order.supplier_id)
    assert supplier.code == "TRANSFER"
    assert supplier.supplier_type is SupplierType.internal_transfer
    assert supplier.is_active

    moves = procurement.movements_for_reference(result.transfer_id)
    assert [(m.movement_type, m.quantity) for m in moves] == [
        (MovementType.transfer_out, -10),
        (MovementType.transfer_in, 10),
    ]
    assert all(m.from_location_id == world.warehouse.id for m in moves)
    assert all(m.to_location_id == world.shop.id for m in moves)
    assert all(m.order_line_id == order.lines[0].id for m in moves)


def test_transfer_creates_destination_level(procurement, world, stock, db_session):
    backroom = Location(name="Backroom", active=True)
    db_session.add(backroom)
    db_session.commit()

    result = procurement.transfer_stock(
        TransferRequest(
            product_id=world.product.id,
            from_location_id=world.warehouse.id,
            to_location_id=backroom.id,
            quantity=7,
        )
    )

    assert result.stock_before == {"source": 50, "destination": 0}
    assert stock(world.product.id, backroom.id) == 7


def test_transfer_supplier_is_reused(procurement, world, db_session):
    first = procurement.transfer_stock(_request(world, 1))
    second = procurement.transfer_stock(_request(world, 1))

    assert first.order.supplier_id == second.order.supplier_id
    assert len(db_session.execute(select(Supplier).where(Supplier.code == "TRANSFER")).scalars().all()) == 1


def test_insufficient_stock_leaves_no_residue(procurement, world, stock, db_session):
    with pytest.raises(InsufficientStockError) as exc:
        procurement.transfer_stock(_request(world, 60))

    assert exc.value.available == 50
    assert exc.value.requested == 60
    assert exc.value.location_id == world.warehouse.id

    db_session.rollback()
    assert stock(world.product.id, world.warehouse.id) == 50
    assert stock(world.product.id, world.shop.id) == 5
    assert _transfer_orders(db_session) == []
    assert _movements(db_session) == []


def test_missing_source_level_is_insufficient_stock(procurement, world):
    with pytest.raises(InsufficientStockError) as exc:
        procurement.transfer_stock(
            TransferRequest(
                product_id=world.other_product.id,
                from_location_id=world.warehouse.id,
                to_location_id=world.shop.id,
                quantity=1,
            )
        )
    assert exc.value.available == 0


def test_non_positive_quantity_is_rejected(procurement, world):
    with pytest.raises(ValidationError):
        procurement.transfer_stock(_request(world, 0))


def test_same_source_and_destination_is_rejected(procurement, world):
    req = _request(world)
    req.to_location_id = req.from_location_id

    with pytest.raises(ValidationError):
        procurement.transfer_stock(req)


def test_unknown_product_or_location(procurement, world):
    with pytest.raises(NotFoundError):
        procurement.transfer_stock(
            TransferRequest(product_id=987654, from_location_id=world.warehouse.id, to_location_id=world.shop.id, quantity=1)
        )
    with pytest.raises(NotFoundError):
        procurement.transfer_stock(
            TransferRequest(product_id=world.product.id, from_location_id=world.warehouse.id, to_location_id=987654, quantity=1)
        )


def test_failure_in_stock_step_compensates_previous_steps(procurement, world, stock, db_session, monkeypatch):
    """
    GIVEN l'écriture du mouvement transfer_in échoue (étape 3)
    THEN  étape 3 annulée en bloc, commande supprimée, fournisseur TRANSFER désactivé,
          l'erreur d'origine remonte
    """
    real_record = procurement.ledger.record

    def failing_record(draft):
        if draft.movement_type is MovementType.transfer_in:
            raise RuntimeError("ledger down")
        return real_record(draft)

    monkeypatch.setattr(procurement.ledger, "record", failing_record)

    with pytest.raises(RuntimeError, match="ledger down"):
        procurement.transfer_stock(_request(world, 10))

    assert stock(world.product.id, world.warehouse.id) == 50
    assert stock(world.product.id, world.shop.id) == 5
    assert _transfer_orders(db_session) == []
    assert _movements(db_session) == []

    supplier = db_session.execute(select(Supplier).where(Supplier.code == "TRANSFER")).scalar_one()
    db_session.refresh(supplier)
    assert supplier.is_active is False

    # le transfert suivant réactive le fournisseur
    monkeypatch.undo()
    procurement.transfer_stock(_request(world, 10))
    db_session.refresh(supplier)
    assert supplier.is_active is True


def test_failure_in_last_step_restores_stock_with_adjustments(procurement, world, stock, db_session, monkeypatch):
    """
    GIVEN mark_shipped échoue (étape 4), le stock a déjà bougé (étape 3 committée)
    THEN  stock restauré à 50/5, mouvements d'origine conservés + 2 ajustements inverses
    """

    def boom(ctx):
        raise RuntimeError("cannot ship")

    monkeypatch.setattr(procurement.transfers, "_mark_shipped", boom)

    with pytest.raises(RuntimeError, match="cannot ship"):
        procurement.transfer_stock(_request(world, 10))

    assert stock(world.product.id, world.warehouse.id) == 50
    assert stock(world.product.id, world.shop.id) == 5
    assert _transfer_orders(db_session) == []

    moves = _movements(db_session)
    assert [(m.movement_type, m.quantity) for m in moves] == [
        (MovementType.transfer_out, -10),
        (MovementType.transfer_in, 10),
        (MovementType.adjustment, 10),
        (MovementType.adjustment, -10),
    ]
    # le ledger décrit un effet net nul par location
    net = {}
    for m in moves:
        loc = m.to_location_id if m.quantity > 0 else m.from_location_id
        net[loc] = net.get(loc, 0) + m.quantity
    assert net == {world.warehouse.id: 0, world.shop.id: 0}


def test_stock_drained_before_transfer_step_is_rechecked(procurement, world, stock, db_session, monkeypatch):
    """
    GIVEN le contrôle indicatif passe (50 en Warehouse)
    WHEN  le stock tombe à 3 avant l'étape 3 (vente concurrente)
    THEN  INSUFFICIENT_STOCK au moment d'écrire, commande supprimée,
          fournisseur TRANSFER désactivé, aucun mouvement
    """
    real_ensure = procurement.transfers._ensure_supplier

    def ensure_then_drain(ctx):
        result = real_ensure(ctx)
        level = db_session.get(StockLevel, (world.product.id, world.warehouse.id))
        level.stocked_quantity = 3
        return result

    monkeypatch.setattr(procurement.transfers, "_ensure_supplier", ensure_then_drain)

    with pytest.raises(InsufficientStockError) as exc:
        procurement.transfer_stock(_request(world, 10))

    assert exc.value.available == 3
    assert exc.value.requested == 10
    assert stock(world.product.id, world.warehouse.id) == 3
    assert stock(world.product.id, world.shop.id) == 5
    assert _transfer_orders(db_session) == []
    assert _movements(db_session) == []

    supplier = db_session.execute(select(Supplier).where(Supplier.code == "TRANSFER")).scalar_one()
    db_session.refresh(supplier)
    assert supplier.is_active is False


def test_compensation_error_does_not_mask_original(procurement, world, db_session, monkeypatch, caplog):
    def boom(ctx):
        raise RuntimeError("cannot ship")

    def broken_undo(data):
        raise RuntimeError("cannot delete order")

    monkeypatch.setattr(procurement.transfers, "_mark_shipped", boom)
    monkeypatch.setattr(procurement.transfers, "_undo_order", broken_undo)

    with caplog.at_level(logging.ERROR, logger="backoffice.services.saga"):
        with pytest.raises(RuntimeError, match="cannot ship"):
            procurement.transfer_stock(_request(world, 10))

    assert "compensation of create_transfer_order failed" in caplog.text


def test_idempotent_replay(procurement, world, stock, db_session):
    first = procurement.transfer_stock(_request(world, 10, idempotency_key="key-123"))
    again = procurement.transfer_stock(_request(world, 10, idempotency_key="key-123"))

    assert again.replayed is True
    assert again.transfer_id == first.transfer_id
    assert again.order.id == first.order.id
    assert again.stock_after == {"source": 40, "destination": 15}
    assert stock(world.product.id, world.warehouse.id) == 40
    assert len(_transfer_orders(db_session)) == 1


def test_receiving_transfer_line_does_not_move_stock_again(procurement, world, stock):
    result = procurement.transfer_stock(_request(world, 10))

    line = procurement.receive_line(result.order.lines[0].id, 10, actor=world.actor)

    assert line.line_status is LineStatus.received
    assert procurement.get_order(result.order.id).status is OrderStatus.received
    assert stock(world.product.id, world.warehouse.id) == 40
    assert stock(world.product.id, world.shop.id) == 15


def test_transfer_statistics(procurement, world):
    procurement.transfer_stock(_request(world, 10))
    procurement.transfer_stock(_request(world, 5))
    with pytest.raises(InsufficientStockError):
        procurement.transfer_stock(_request(world, 500))

    stats = procurement.transfer_statistics()

    assert stats.total_transfers == 2
    assert stats.total_units == 15
    assert stats.by_status == {"shipped": 2}
