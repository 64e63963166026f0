"""
Exceptions typées du back-office.

Chaque classe porte un ``code`` stable (lisible machine, exposé par l'API)
et ses données structurées en attributs : on attrape par type, jamais en
parsant le message.

    BackofficeError
    +-- ValidationError               VALIDATION
    +-- NotFoundError                 NOT_FOUND
    +-- InvalidStateTransitionError   INVALID_STATE_TRANSITION
    +-- InsufficientStockError        INSUFFICIENT_STOCK
    +-- ExternalDependencyError       EXTERNAL_DEPENDENCY_FAILURE
    +-- LedgerImmutableError          LEDGER_IMMUTABLE
"""
from __future__ import annotations

from typing import Any, Iterable


class BackofficeError(Exception):
    code: str = "BACKOFFICE_ERROR"
    http_status: int = 500

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": str(self)}


class ValidationError(BackofficeError):
    """Entrée mal formée (quantité nulle, source == destination, ...)."""

    code: str = "VALIDATION"
    http_status: int = 400

    def __init__(self, message: str, *, field: str | None = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(BackofficeError):
    code: str = "NOT_FOUND"
    http_status: int = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(entity=self.entity, entity_id=self.entity_id)
        return data


class InvalidStateTransitionError(BackofficeError):
    code: str = "INVALID_STATE_TRANSITION"
    http_status: int = 409

    def __init__(self, current: str, requested: str, valid_next: Iterable[str]):
        self.current = current
        self.requested = requested
        self.valid_next = list(valid_next)
        allowed = ", ".join(self.valid_next) or "none (terminal state)"
        super().__init__(
            f"Invalid status transition from '{current}' to '{requested}'. "
            f"Valid next statuses: {allowed}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(current=self.current, requested=self.requested, valid_next=self.valid_next)
        return data


class InsufficientStockError(BackofficeError):
    code: str = "INSUFFICIENT_STOCK"
    http_status: int = 409

    def __init__(self, *, location_id: int, available: int, requested: int):
        self.location_id = location_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock at location {location_id} "
            f"(available={available}, requested={requested})"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(location_id=self.location_id, available=self.available, requested=self.requested)
        return data


class ExternalDependencyError(BackofficeError):
    """Erreur d'un service aval (inventaire, locations, catalogue)."""

    code: str = "EXTERNAL_DEPENDENCY_FAILURE"
    http_status: int = 502

    def __init__(self, dependency: str, message: str):
        self.dependency = dependency
        super().__init__(f"{dependency}: {message}")


class LedgerImmutableError(BackofficeError):
    code: str = "LEDGER_IMMUTABLE"
    http_status: int = 500
