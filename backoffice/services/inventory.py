"""
Services "externes" consommés par la gestion fournisseurs.

Inventaire, catalogue produits, locations et identité sont vus au travers
de protocoles minimaux, injectés explicitement dans chaque service métier.
Les implémentations SQL ci-dessous s'appuient sur les tables du projet.
Elles ne font jamais de commit : la transaction appartient à l'appelant.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.app.core.errors import ExternalDependencyError, NotFoundError
from backoffice.app.db.models.models_v1 import Location, Product, StockLevel, User

logger = logging.getLogger(__name__)


# ---------- Contrats ----------
@dataclass(frozen=True)
class StockLevelView:
    inventory_item_id: int
    location_id: int
    stocked_quantity: int


@dataclass(frozen=True)
class LevelChange:
    inventory_item_id: int
    location_id: int
    stocked_quantity: int = 0


@dataclass(frozen=True)
class ProductRef:
    product_id: int
    inventory_item_id: int
    title: str
    sku: str | None = None


@dataclass(frozen=True)
class LocationRef:
    id: int
    name: str


@dataclass(frozen=True)
class ActorRef:
    """Acteur tel que stocké (id brut) + nom résolu à l'affichage."""

    raw_id: str | None
    display_name: str | None = None

    @property
    def label(self) -> str | None:
        return self.display_name or self.raw_id


class InventoryService(Protocol):
    def list_level(self, inventory_item_id: int, location_id: int) -> StockLevelView | None: ...

    def update_levels(self, changes: Iterable[LevelChange]) -> None: ...

    def create_levels(self, changes: Iterable[LevelChange]) -> None: ...

    def delete_levels(self, changes: Iterable[LevelChange]) -> None: ...


class ProductCatalog(Protocol):
    def resolve(self, product_id: int) -> ProductRef: ...


class LocationDirectory(Protocol):
    def retrieve(self, location_id: int) -> LocationRef: ...


class IdentityDirectory(Protocol):
    def display_name(self, actor_id: str | None) -> str | None: ...


# ---------- Implémentations SQL ----------
class SqlInventoryService:
    """
    Niveaux de stock par (item, location).

    Les lectures posent un verrou ligne (FOR UPDATE) : deux transferts
    concurrents sur la même paire sont sérialisés par la base. Sans effet
    sur SQLite.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get(self, inventory_item_id: int, location_id: int) -> StockLevel | None:
        return (
            self.db.execute(
                select(StockLevel)
                .where(StockLevel.product_id == inventory_item_id)
                .where(StockLevel.location_id == location_id)
                .with_for_update()
            )
            .scalar_one_or_none()
        )

    def list_level(self, inventory_item_id: int, location_id: int) -> StockLevelView | None:
        try:
            sl = self._get(inventory_item_id, location_id)
        except SQLAlchemyError as exc:
            raise ExternalDependencyError("inventory", str(exc)) from exc
        if not sl:
            return None
        return StockLevelView(
            inventory_item_id=int(sl.product_id),
            location_id=int(sl.location_id),
            stocked_quantity=int(sl.stocked_quantity),
        )

    def update_levels(self, changes: Iterable[LevelChange]) -> None:
        for ch in changes:
            sl = self._get(ch.inventory_item_id, ch.location_id)
            if not sl:
                raise ExternalDependencyError(
                    "inventory",
                    f"no stock level for item {ch.inventory_item_id} at location {ch.location_id}",
                )
            sl.stocked_quantity = ch.stocked_quantity
        self._flush()

    def create_levels(self, changes: Iterable[LevelChange]) -> None:
        for ch in changes:
            self.db.add(
                StockLevel(
                    product_id=ch.inventory_item_id,
                    location_id=ch.location_id,
                    stocked_quantity=ch.stocked_quantity,
                )
            )
        self._flush()

    def delete_levels(self, changes: Iterable[LevelChange]) -> None:
        for ch in changes:
            sl = self._get(ch.inventory_item_id, ch.location_id)
            if sl:
                self.db.delete(sl)
        self._flush()

    def _flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            raise ExternalDependencyError("inventory", str(exc)) from exc


class SqlProductCatalog:
    def __init__(self, db: Session):
        self.db = db

    def resolve(self, product_id: int) -> ProductRef:
        p = self.db.get(Product, product_id)
        if not p:
            raise NotFoundError("Product", product_id)
        # un produit est son propre inventory item
        return ProductRef(product_id=int(p.id), inventory_item_id=int(p.id), title=p.name, sku=p.sku)


class SqlLocationDirectory:
    def __init__(self, db: Session):
        self.db = db

    def retrieve(self, location_id: int) -> LocationRef:
        loc = self.db.get(Location, location_id)
        if not loc:
            raise NotFoundError("Location", location_id)
        return LocationRef(id=int(loc.id), name=loc.name)


class SqlIdentityDirectory:
    """Résolution best-effort : ne lève jamais, None si inconnu."""

    def __init__(self, db: Session):
        self.db = db

    def display_name(self, actor_id: str | None) -> str | None:
        if not actor_id or not str(actor_id).isdigit():
            return None
        try:
            user = self.db.get(User, int(actor_id))
        except SQLAlchemyError:
            logger.warning("Actor lookup failed for %s", actor_id, exc_info=True)
            return None
        if not user:
            return None
        full = " ".join(part for part in (user.first_name, user.last_name) if part)
        return full or user.email


def resolve_actor(identity: IdentityDirectory, actor_id: str | None) -> ActorRef:
    try:
        name = identity.display_name(actor_id)
    except Exception:
        logger.warning("Identity directory raised for actor %s", actor_id, exc_info=True)
        name = None
    return ActorRef(raw_id=actor_id, display_name=name)


# ---------- Helpers stock ----------
@dataclass(frozen=True)
class StockIncrement:
    inventory_item_id: int
    location_id: int
    quantity_before: int
    quantity_after: int
    created: bool


def increment_stock(
    inventory: InventoryService,
    *,
    inventory_item_id: int,
    location_id: int,
    quantity: int,
) -> StockIncrement:
    """
    Ajoute ``quantity`` au niveau (item, location), en le créant si absent.
    Le résultat contient de quoi revenir à l'état antérieur.
    """
    level = inventory.list_level(inventory_item_id, location_id)
    if level is None:
        inventory.create_levels(
            [LevelChange(inventory_item_id=inventory_item_id, location_id=location_id, stocked_quantity=quantity)]
        )
        return StockIncrement(inventory_item_id, location_id, 0, quantity, created=True)

    after = level.stocked_quantity + quantity
    inventory.update_levels(
        [LevelChange(inventory_item_id=inventory_item_id, location_id=location_id, stocked_quantity=after)]
    )
    return StockIncrement(inventory_item_id, location_id, level.stocked_quantity, after, created=False)


def revert_increment(inventory: InventoryService, inc: StockIncrement) -> None:
    key = LevelChange(inventory_item_id=inc.inventory_item_id, location_id=inc.location_id)
    if inc.created:
        inventory.delete_levels([key])
    else:
        inventory.update_levels(
            [
                LevelChange(
                    inventory_item_id=inc.inventory_item_id,
                    location_id=inc.location_id,
                    stocked_quantity=inc.quantity_before,
                )
            ]
        )
