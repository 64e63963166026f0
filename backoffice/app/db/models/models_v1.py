from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.app.core.errors import LedgerImmutableError
from backoffice.app.db.base import Base
from backoffice.app.db.models.core_types import (
    BigIntPK,
    LineStatus,
    MovementType,
    OrderStatus,
    OrderType,
    SupplierType,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- MASTER DATA (services "externes") ----------
class Location(Base):
    __tablename__ = "locations"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    first_name: Mapped[str | None] = mapped_column(String(100))
    last_name: Mapped[str | None] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class StockLevel(Base):
    __tablename__ = "stock_levels"
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"), primary_key=True)

    stocked_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("stocked_quantity >= 0", name="ck_stock_stocked_nonneg"),
    )


# ---------- SUPPLIER MANAGEMENT ----------
class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str | None] = mapped_column(String(64), unique=True)
    tax_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(64))

    supplier_type: Mapped[SupplierType] = mapped_column(
        Enum(SupplierType, name="supplier_type"),
        default=SupplierType.standard,
        nullable=False,
    )
    currency_code: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    meta: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    orders: Mapped[list["SupplierOrder"]] = relationship(back_populates="supplier")
    product_links: Mapped[list["ProductSupplier"]] = relationship(back_populates="supplier")


class SupplierOrder(Base):
    __tablename__ = "supplier_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    display_id: Mapped[str | None] = mapped_column(String(32), unique=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True)

    order_type: Mapped[OrderType] = mapped_column(
        Enum(OrderType, name="order_type"),
        default=OrderType.supplier,
        nullable=False,
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.draft,
        nullable=False,
    )

    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    expected_delivery_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    currency_code: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    tax_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    discount_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)

    source_location_id: Mapped[int | None] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"))
    source_location_name: Mapped[str | None] = mapped_column(String(200))
    destination_location_id: Mapped[int | None] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"))
    destination_location_name: Mapped[str | None] = mapped_column(String(200))

    reference: Mapped[str | None] = mapped_column(String(128))
    notes: Mapped[str | None] = mapped_column(Text)
    internal_notes: Mapped[str | None] = mapped_column(Text)

    # Acteurs : identifiants bruts, le nom est résolu à l'affichage
    created_by: Mapped[str | None] = mapped_column(String(64))
    received_by: Mapped[str | None] = mapped_column(String(64))

    # Rejeu idempotent d'un transfert (clé unique, nullable OK)
    idempotency_key: Mapped[str | None] = mapped_column(String(64), unique=True)

    meta: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    supplier: Mapped[Supplier] = relationship(back_populates="orders")
    lines: Mapped[list["SupplierOrderLine"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SupplierOrderLine.id",
    )

    __table_args__ = (
        CheckConstraint(
            "order_type <> 'transfer' OR ("
            "source_location_id IS NOT NULL AND destination_location_id IS NOT NULL "
            "AND source_location_id <> destination_location_id)",
            name="ck_transfer_order_locations",
        ),
        Index("ix_supplier_orders_type_status", "order_type", "status"),
    )


class SupplierOrderLine(Base):
    __tablename__ = "supplier_order_lines"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("supplier_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # NULL = ligne manuelle (texte libre), sans effet sur l'inventaire
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), index=True)
    product_title: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_sku: Mapped[str | None] = mapped_column(String(64))

    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_pending: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0, nullable=False)
    discount_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    line_status: Mapped[LineStatus] = mapped_column(
        Enum(LineStatus, name="line_status"),
        default=LineStatus.pending,
        nullable=False,
    )

    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_by: Mapped[str | None] = mapped_column(String(64))
    reception_notes: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)

    meta: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    order: Mapped[SupplierOrder] = relationship(back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity_ordered > 0", name="ck_order_line_qty_pos"),
        CheckConstraint("quantity_received >= 0", name="ck_order_line_received_nonneg"),
        CheckConstraint("quantity_received <= quantity_ordered", name="ck_order_line_received_le_ordered"),
        CheckConstraint("unit_price >= 0", name="ck_order_line_unit_price_nonneg"),
    )


class ProductSupplier(Base):
    __tablename__ = "product_suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False)

    supplier_sku: Mapped[str | None] = mapped_column(String(64))
    supplier_product_name: Mapped[str | None] = mapped_column(String(255))

    cost_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    currency_code: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    minimum_order_quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    lead_time_days: Mapped[int | None] = mapped_column(Integer)

    # Liste append-only de {old_price, new_price, changed_at, changed_by}
    price_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    is_preferred_supplier: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_purchase_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_price_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)

    meta: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    supplier: Mapped[Supplier] = relationship(back_populates="product_links")

    __table_args__ = (
        UniqueConstraint("product_id", "supplier_id", name="uq_product_supplier"),
        CheckConstraint("cost_price IS NULL OR cost_price >= 0", name="ck_product_supplier_cost_nonneg"),
    )


# ---------- LEDGER ----------
class InventoryMovement(Base):
    __tablename__ = "inventory_movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    movement_type: Mapped[MovementType] = mapped_column(
        Enum(MovementType, name="movement_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    reference_id: Mapped[str | None] = mapped_column(String(64), index=True)
    reference_type: Mapped[str | None] = mapped_column(String(32))
    order_line_id: Mapped[int | None] = mapped_column(Integer)

    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    product_title: Mapped[str] = mapped_column(String(255), nullable=False)

    from_location_id: Mapped[int | None] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"))
    from_location_name: Mapped[str | None] = mapped_column(String(200))
    to_location_id: Mapped[int | None] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"))
    to_location_name: Mapped[str | None] = mapped_column(String(200))

    # Signé : négatif en sortie, positif en entrée
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    total_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    reason: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)

    performed_by: Mapped[str | None] = mapped_column(String(64))
    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    meta: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_inventory_movement_qty_nonzero"),
        Index("ix_inventory_movements_product_time", "product_id", "performed_at"),
    )


# Le ledger est append-only : UPDATE/DELETE refusés au flush
@event.listens_for(InventoryMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise LedgerImmutableError(f"InventoryMovement {target.id} is append-only")


@event.listens_for(InventoryMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise LedgerImmutableError(f"InventoryMovement {target.id} is append-only")
