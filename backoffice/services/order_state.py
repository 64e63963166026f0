"""
Machine à états des commandes fournisseur.

received et cancelled sont terminaux (aucune transition sortante).
"""
from __future__ import annotations

from backoffice.app.core.errors import InvalidStateTransitionError
from backoffice.app.db.models.core_types import OrderStatus

S = OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.draft: frozenset({S.pending, S.confirmed, S.received, S.cancelled}),
    S.pending: frozenset({S.confirmed, S.received, S.cancelled}),
    S.confirmed: frozenset({S.shipped, S.received, S.cancelled}),
    S.shipped: frozenset({S.partially_received, S.received, S.incident, S.cancelled}),
    S.partially_received: frozenset({S.received, S.incident}),
    S.incident: frozenset({S.received, S.cancelled}),
    S.received: frozenset(),
    S.cancelled: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)

# Entrer dans ces états déclenche la synchro stock des lignes produit
STOCK_SYNC_STATUSES = frozenset({S.confirmed, S.received})


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def valid_next_statuses(current: OrderStatus) -> list[OrderStatus]:
    # ordre de déclaration de l'enum, stable pour l'API
    allowed = TRANSITIONS[OrderStatus(current)]
    return [s for s in OrderStatus if s in allowed]


def validate_transition(current: OrderStatus, next_status: OrderStatus) -> bool:
    try:
        cur, nxt = OrderStatus(current), OrderStatus(next_status)
    except ValueError:
        return False
    return nxt in TRANSITIONS[cur]


def ensure_transition(current: OrderStatus, next_status: OrderStatus) -> None:
    if not validate_transition(current, next_status):
        raise InvalidStateTransitionError(
            current=OrderStatus(current).value,
            requested=str(getattr(next_status, "value", next_status)),
            valid_next=[s.value for s in valid_next_statuses(current)],
        )
