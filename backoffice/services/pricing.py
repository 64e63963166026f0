"""
Historique des prix fournisseur.

- price_history d'un lien produit/fournisseur : append-only, jamais tronqué.
- dernier prix / comparaison : calculés depuis les lignes de commandes
  fournisseur (les commandes de transfert, à prix nul, sont exclues).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.core.errors import NotFoundError, ValidationError
from backoffice.app.db.models.core_types import OrderStatus, OrderType, SupplierType
from backoffice.app.db.models.models_v1 import (
    ProductSupplier,
    Supplier,
    SupplierOrder,
    SupplierOrderLine,
    utcnow,
)
from backoffice.services.inventory import ProductCatalog
from backoffice.services.suppliers import SupplierRegistry

logger = logging.getLogger(__name__)

# TODO: confirmer avec le métier si les brouillons doivent compter (PRICE_HISTORY_INCLUDE_DRAFT)
PRICED_STATUSES = frozenset(
    {
        OrderStatus.draft,
        OrderStatus.confirmed,
        OrderStatus.shipped,
        OrderStatus.partially_received,
        OrderStatus.received,
    }
)


@dataclass(frozen=True)
class PriceInfo:
    supplier_id: int
    product_id: int
    unit_price: Decimal
    tax_rate: Decimal
    discount_rate: Decimal
    supplier_sku: str | None
    order_id: int
    order_display_id: str | None
    order_date: datetime
    order_status: OrderStatus
    product_title: str


@dataclass(frozen=True)
class CheaperOption:
    supplier_id: int
    supplier_name: str
    unit_price: Decimal
    savings: Decimal
    savings_percentage: Decimal
    supplier_sku: str | None
    last_order_date: datetime


@dataclass(frozen=True)
class PriceComparison:
    product_id: int
    current_supplier_id: int
    current_price: Decimal | None
    cheapest_option: CheaperOption | None = None


class PriceHistoryTracker:
    def __init__(
        self,
        db: Session,
        *,
        suppliers: SupplierRegistry,
        products: ProductCatalog,
        include_draft: bool = True,
    ):
        self.db = db
        self.suppliers = suppliers
        self.products = products
        self.statuses = PRICED_STATUSES if include_draft else PRICED_STATUSES - {OrderStatus.draft}

    # ---------- Liens produit / fournisseur ----------
    def get_link(self, product_id: int, supplier_id: int) -> ProductSupplier | None:
        return self.db.execute(
            select(ProductSupplier)
            .where(ProductSupplier.product_id == product_id)
            .where(ProductSupplier.supplier_id == supplier_id)
        ).scalar_one_or_none()

    def links_for_supplier(self, supplier_id: int) -> list[ProductSupplier]:
        self.suppliers.get(supplier_id)
        stmt = (
            select(ProductSupplier)
            .where(ProductSupplier.supplier_id == supplier_id)
            .order_by(ProductSupplier.product_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def link_product(
        self,
        product_id: int,
        supplier_id: int,
        *,
        supplier_sku: str | None = None,
        supplier_product_name: str | None = None,
        cost_price: Decimal | None = None,
        currency_code: str = "EUR",
        minimum_order_quantity: int = 1,
        lead_time_days: int | None = None,
        is_preferred_supplier: bool = False,
    ) -> ProductSupplier:
        self.products.resolve(product_id)
        self.suppliers.get(supplier_id)
        if self.get_link(product_id, supplier_id):
            raise ValidationError(f"Product {product_id} is already linked to supplier {supplier_id}")
        if cost_price is not None and Decimal(cost_price) < 0:
            raise ValidationError("cost_price must be >= 0", field="cost_price")

        link = ProductSupplier(
            product_id=product_id,
            supplier_id=supplier_id,
            supplier_sku=supplier_sku,
            supplier_product_name=supplier_product_name,
            cost_price=cost_price,
            currency_code=currency_code,
            minimum_order_quantity=minimum_order_quantity,
            lead_time_days=lead_time_days,
            is_preferred_supplier=is_preferred_supplier,
            price_history=[],
            last_price_update=utcnow() if cost_price is not None else None,
        )
        self.db.add(link)
        self.db.flush()
        return link

    def update_cost(
        self,
        product_id: int,
        supplier_id: int,
        new_cost: Decimal,
        actor: str | None = None,
    ) -> ProductSupplier:
        link = self.get_link(product_id, supplier_id)
        if not link:
            raise NotFoundError("ProductSupplier", f"{product_id}/{supplier_id}")
        new_cost = Decimal(new_cost)
        if new_cost < 0:
            raise ValidationError("cost must be >= 0", field="cost_price")

        now = utcnow()
        entry = {
            "old_price": None if link.cost_price is None else str(link.cost_price),
            "new_price": str(new_cost),
            "changed_at": now.isoformat(),
            "changed_by": actor,
        }
        # nouvelle liste : la mutation en place d'une colonne JSON n'est pas détectée
        link.price_history = [*(link.price_history or []), entry]
        link.cost_price = new_cost
        link.last_price_update = now
        self.db.flush()
        logger.info(
            "Cost update product=%s supplier=%s %s -> %s",
            product_id,
            supplier_id,
            entry["old_price"],
            entry["new_price"],
        )
        return link

    def sync_product_supplier(
        self,
        product_id: int,
        supplier_id: int,
        *,
        supplier_sku: str | None = None,
        unit_price: Decimal | None = None,
        actor: str | None = None,
    ) -> ProductSupplier:
        link = self.get_link(product_id, supplier_id)
        if not link:
            return self.link_product(product_id, supplier_id, supplier_sku=supplier_sku, cost_price=unit_price)

        if supplier_sku:
            link.supplier_sku = supplier_sku
        if unit_price is not None and (link.cost_price is None or Decimal(unit_price) != link.cost_price):
            return self.update_cost(product_id, supplier_id, Decimal(unit_price), actor)
        self.db.flush()
        return link

    # ---------- Requêtes sur les lignes de commande ----------
    def _priced_lines(self, product_id: int):
        return (
            select(SupplierOrderLine, SupplierOrder)
            .join(SupplierOrder, SupplierOrder.id == SupplierOrderLine.order_id)
            .where(SupplierOrderLine.product_id == product_id)
            .where(SupplierOrder.order_type == OrderType.supplier)
            .where(SupplierOrder.status.in_(self.statuses))
        )

    def last_price(self, supplier_id: int, product_id: int) -> PriceInfo | None:
        row = self.db.execute(
            self._priced_lines(product_id)
            .where(SupplierOrder.supplier_id == supplier_id)
            .order_by(
                SupplierOrder.order_date.desc(),
                SupplierOrder.id.desc(),
                SupplierOrderLine.id.desc(),
            )
            .limit(1)
        ).first()
        if row is None:
            return None

        line, order = row
        link = self.get_link(product_id, supplier_id)
        sku = link.supplier_sku if link and link.supplier_sku else line.supplier_sku
        return PriceInfo(
            supplier_id=supplier_id,
            product_id=product_id,
            unit_price=Decimal(line.unit_price),
            tax_rate=Decimal(line.tax_rate),
            discount_rate=Decimal(line.discount_rate),
            supplier_sku=sku,
            order_id=order.id,
            order_display_id=order.display_id,
            order_date=order.order_date,
            order_status=order.status,
            product_title=line.product_title,
        )

    def compare_prices(self, product_id: int, exclude_supplier_id: int) -> PriceComparison:
        current = self.last_price(exclude_supplier_id, product_id)
        if current is None:
            return PriceComparison(product_id=product_id, current_supplier_id=exclude_supplier_id, current_price=None)

        supplier_ids = self.db.execute(
            select(SupplierOrder.supplier_id)
            .join(SupplierOrderLine, SupplierOrderLine.order_id == SupplierOrder.id)
            .join(Supplier, Supplier.id == SupplierOrder.supplier_id)
            .where(SupplierOrderLine.product_id == product_id)
            .where(SupplierOrder.order_type == OrderType.supplier)
            .where(SupplierOrder.status.in_(self.statuses))
            .where(SupplierOrder.supplier_id != exclude_supplier_id)
            .where(Supplier.is_active.is_(True))
            .where(Supplier.supplier_type == SupplierType.standard)
            .distinct()
        ).scalars().all()

        best: CheaperOption | None = None
        for sid in supplier_ids:
            candidate = self.last_price(sid, product_id)
            if candidate is None:
                continue
            savings = current.unit_price - candidate.unit_price
            if savings <= 0:
                continue
            if best is not None and candidate.unit_price >= best.unit_price:
                continue
            pct = (savings / current.unit_price * 100).quantize(Decimal("0.01"))
            best = CheaperOption(
                supplier_id=sid,
                supplier_name=self.suppliers.get(sid).name,
                unit_price=candidate.unit_price,
                savings=savings,
                savings_percentage=pct,
                supplier_sku=candidate.supplier_sku,
                last_order_date=candidate.order_date,
            )

        return PriceComparison(
            product_id=product_id,
            current_supplier_id=exclude_supplier_id,
            current_price=current.unit_price,
            cheapest_option=best,
        )

    def prices_for_supplier(self, supplier_id: int) -> list[PriceInfo]:
        self.suppliers.get(supplier_id)
        product_ids = self.db.execute(
            select(SupplierOrderLine.product_id)
            .join(SupplierOrder, SupplierOrder.id == SupplierOrderLine.order_id)
            .where(SupplierOrder.supplier_id == supplier_id)
            .where(SupplierOrder.order_type == OrderType.supplier)
            .where(SupplierOrder.status.in_(self.statuses))
            .where(SupplierOrderLine.product_id.is_not(None))
            .distinct()
        ).scalars().all()

        prices = [self.last_price(supplier_id, pid) for pid in product_ids]
        return sorted((p for p in prices if p is not None), key=lambda p: (p.product_title, p.product_id))
