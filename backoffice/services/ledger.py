"""
Ledger des mouvements d'inventaire (audit, append-only).

Le stock courant n'est JAMAIS recalculé depuis ce ledger : il appartient au
service d'inventaire. Une ligne = un delta de quantité appliqué.

Durabilité (LEDGER_DURABILITY) :
    transactional -> la ligne part dans la transaction de la mutation de
                     stock ; si l'écriture échoue, les deux échouent.
    best_effort   -> écriture dans un SAVEPOINT ; un échec est loggé et la
                     mutation de stock est conservée.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.app.db.models.core_types import LedgerDurability, MovementType
from backoffice.app.db.models.models_v1 import InventoryMovement, utcnow

logger = logging.getLogger(__name__)


@dataclass
class MovementDraft:
    movement_type: MovementType
    product_id: int
    product_title: str
    quantity: int
    reference_id: str | None = None
    reference_type: str | None = None
    order_line_id: int | None = None
    from_location_id: int | None = None
    from_location_name: str | None = None
    to_location_id: int | None = None
    to_location_name: str | None = None
    unit_cost: Decimal | None = None
    reason: str | None = None
    notes: str | None = None
    performed_by: str | None = None
    meta: dict[str, Any] | None = None


def _stock_filter(stock_only: bool) -> tuple:
    """
    Une réception de ligne écrit un supplier_receipt "trace" (stock_applied
    à false) : les unités sont comptées par le supplier_receipt de la
    synchro stock. stock_only écarte les traces pour sommer les quantités.
    """
    if not stock_only:
        return ()
    return (InventoryMovement.meta["stock_applied"].as_boolean().is_not(False),)


class MovementLedger:
    def __init__(self, db: Session, durability: LedgerDurability = LedgerDurability.transactional):
        self.db = db
        self.durability = durability

    def record(self, draft: MovementDraft) -> InventoryMovement | None:
        """
        Ajoute une ligne. Retourne None uniquement en mode best_effort quand
        l'écriture a échoué.
        """
        if draft.quantity == 0:
            raise ValueError("movement quantity must be non-zero")

        mv = self._build(draft)

        if self.durability is LedgerDurability.transactional:
            self.db.add(mv)
            self.db.flush()
            return mv

        try:
            with self.db.begin_nested():
                self.db.add(mv)
        except SQLAlchemyError:
            logger.exception(
                "Ledger write failed (best effort), stock mutation kept: %s %s qty=%s ref=%s",
                draft.movement_type.value,
                draft.product_id,
                draft.quantity,
                draft.reference_id,
            )
            return None
        return mv

    def _build(self, draft: MovementDraft) -> InventoryMovement:
        total_cost = None
        if draft.unit_cost is not None:
            total_cost = Decimal(draft.unit_cost) * abs(draft.quantity)
        return InventoryMovement(
            movement_type=draft.movement_type,
            reference_id=draft.reference_id,
            reference_type=draft.reference_type,
            order_line_id=draft.order_line_id,
            product_id=draft.product_id,
            product_title=draft.product_title,
            from_location_id=draft.from_location_id,
            from_location_name=draft.from_location_name,
            to_location_id=draft.to_location_id,
            to_location_name=draft.to_location_name,
            quantity=draft.quantity,
            unit_cost=draft.unit_cost,
            total_cost=total_cost,
            reason=draft.reason,
            notes=draft.notes,
            performed_by=draft.performed_by,
            performed_at=utcnow(),
            meta=draft.meta,
        )

    # ---------- Lectures (reporting) ----------
    def movements_for_product(
        self,
        product_id: int,
        *,
        limit: int = 100,
        offset: int = 0,
        stock_only: bool = False,
    ) -> list[InventoryMovement]:
        stmt = (
            select(InventoryMovement)
            .where(InventoryMovement.product_id == product_id)
            .where(*_stock_filter(stock_only))
            .order_by(InventoryMovement.performed_at.desc(), InventoryMovement.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def movements_for_reference(self, reference_id: str, *, stock_only: bool = False) -> list[InventoryMovement]:
        stmt = (
            select(InventoryMovement)
            .where(InventoryMovement.reference_id == reference_id)
            .where(*_stock_filter(stock_only))
            .order_by(InventoryMovement.id)
        )
        return list(self.db.execute(stmt).scalars().all())
