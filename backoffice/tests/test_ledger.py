import logging
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from backoffice.app.core.errors import LedgerImmutableError
from backoffice.app.db.models.core_types import LedgerDurability, MovementType
from backoffice.app.db.models.models_v1 import StockLevel
from backoffice.services.ledger import MovementDraft, MovementLedger


def _draft(product_id, quantity=-4, **kwargs):
    return MovementDraft(
        movement_type=kwargs.pop("movement_type", MovementType.adjustment),
        product_id=product_id,
        product_title=kwargs.pop("product_title", "Widget"),
        quantity=quantity,
        **kwargs,
    )


def test_record_computes_total_cost(db_session, world):
    ledger = MovementLedger(db_session)

    mv = ledger.record(_draft(world.product.id, -4, unit_cost=Decimal("2.50"), reference_id="INV-1"))
    db_session.commit()

    assert mv.id is not None
    assert mv.total_cost == Decimal("10.00")
    assert mv.performed_at is not None
    assert [m.id for m in ledger.movements_for_reference("INV-1")] == [mv.id]


def test_zero_quantity_is_refused(db_session, world):
    with pytest.raises(ValueError):
        MovementLedger(db_session).record(_draft(world.product.id, 0))


def test_movements_are_append_only(db_session, world):
    ledger = MovementLedger(db_session)
    mv = ledger.record(_draft(world.product.id, 3))
    db_session.commit()

    mv.quantity = 30
    with pytest.raises(LedgerImmutableError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(mv)
    with pytest.raises(LedgerImmutableError):
        db_session.flush()
    db_session.rollback()

    assert [m.quantity for m in ledger.movements_for_product(world.product.id)] == [3]


def test_movements_for_product_newest_first(db_session, world):
    ledger = MovementLedger(db_session)
    first = ledger.record(_draft(world.product.id, 1))
    second = ledger.record(_draft(world.product.id, -1))
    ledger.record(_draft(world.other_product.id, 2, product_title="Gadget"))
    db_session.commit()

    assert [m.id for m in ledger.movements_for_product(world.product.id)] == [second.id, first.id]
    assert [m.id for m in ledger.movements_for_product(world.product.id, limit=1, offset=1)] == [first.id]


def test_best_effort_failure_keeps_stock_mutation(db_session, world, stock, caplog):
    """
    GIVEN LEDGER_DURABILITY=best_effort et un mouvement invalide (produit inconnu)
    THEN  record() retourne None, l'erreur est loggée, le stock modifié est conservé
    """
    ledger = MovementLedger(db_session, LedgerDurability.best_effort)
    level = db_session.get(StockLevel, (world.product.id, world.warehouse.id))
    level.stocked_quantity = 45

    with caplog.at_level(logging.ERROR, logger="backoffice.services.ledger"):
        assert ledger.record(_draft(987654, -5)) is None
    db_session.commit()

    assert stock(world.product.id, world.warehouse.id) == 45
    assert ledger.movements_for_product(987654) == []
    assert "best effort" in caplog.text


def test_transactional_failure_fails_the_mutation(db_session, world, stock):
    ledger = MovementLedger(db_session, LedgerDurability.transactional)
    level = db_session.get(StockLevel, (world.product.id, world.warehouse.id))
    level.stocked_quantity = 45

    with pytest.raises(IntegrityError):
        ledger.record(_draft(987654, -5))
    db_session.rollback()

    assert stock(world.product.id, world.warehouse.id) == 50
