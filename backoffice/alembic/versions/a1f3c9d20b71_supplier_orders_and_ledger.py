"""supplier orders, transfers and inventory ledger

Revision ID: a1f3c9d20b71
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1f3c9d20b71"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SUPPLIER_TYPE = sa.Enum("standard", "internal_transfer", name="supplier_type")
ORDER_TYPE = sa.Enum("supplier", "transfer", name="order_type")
ORDER_STATUS = sa.Enum(
    "draft",
    "pending",
    "confirmed",
    "shipped",
    "partially_received",
    "received",
    "incident",
    "cancelled",
    name="order_status",
)
LINE_STATUS = sa.Enum("pending", "partial", "received", "incident", "cancelled", name="line_status")
MOVEMENT_TYPE = sa.Enum(
    "supplier_receipt",
    "transfer_out",
    "transfer_in",
    "adjustment",
    "sale",
    "return",
    "damage",
    "theft",
    "expired",
    name="movement_type",
)

TS = sa.DateTime(timezone=True)
MONEY = sa.Numeric(14, 2)


def upgrade() -> None:
    # --- master data
    op.create_table(
        "locations",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "stock_levels",
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("stocked_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("stocked_quantity >= 0", name="ck_stock_stocked_nonneg"),
    )

    # --- suppliers
    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("legal_name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(64), unique=True),
        sa.Column("tax_id", sa.String(64), nullable=False, unique=True),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(64)),
        sa.Column("supplier_type", SUPPLIER_TYPE, nullable=False, server_default="standard"),
        sa.Column("currency_code", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text()),
        sa.Column("meta", sa.JSON()),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "supplier_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("display_id", sa.String(32), unique=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("order_type", ORDER_TYPE, nullable=False, server_default="supplier"),
        sa.Column("status", ORDER_STATUS, nullable=False, server_default="draft"),
        sa.Column("order_date", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("expected_delivery_date", TS),
        sa.Column("confirmed_at", TS),
        sa.Column("shipped_at", TS),
        sa.Column("received_at", TS),
        sa.Column("currency_code", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("subtotal", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_total", MONEY, nullable=False, server_default="0"),
        sa.Column("discount_total", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False, server_default="0"),
        sa.Column("source_location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT")),
        sa.Column("source_location_name", sa.String(200)),
        sa.Column("destination_location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT")),
        sa.Column("destination_location_name", sa.String(200)),
        sa.Column("reference", sa.String(128)),
        sa.Column("notes", sa.Text()),
        sa.Column("internal_notes", sa.Text()),
        sa.Column("created_by", sa.String(64)),
        sa.Column("received_by", sa.String(64)),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        sa.Column("meta", sa.JSON()),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "order_type <> 'transfer' OR ("
            "source_location_id IS NOT NULL AND destination_location_id IS NOT NULL "
            "AND source_location_id <> destination_location_id)",
            name="ck_transfer_order_locations",
        ),
    )
    op.create_index("ix_supplier_orders_supplier_id", "supplier_orders", ["supplier_id"])
    op.create_index("ix_supplier_orders_type_status", "supplier_orders", ["order_type", "status"])

    op.create_table(
        "supplier_order_lines",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "order_id",
            sa.BigInteger(),
            sa.ForeignKey("supplier_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT")),
        sa.Column("product_title", sa.String(255), nullable=False),
        sa.Column("supplier_sku", sa.String(64)),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_pending", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("discount_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("total_price", MONEY, nullable=False),
        sa.Column("line_status", LINE_STATUS, nullable=False, server_default="pending"),
        sa.Column("received_at", TS),
        sa.Column("received_by", sa.String(64)),
        sa.Column("reception_notes", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("meta", sa.JSON()),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_order_line_qty_pos"),
        sa.CheckConstraint("quantity_received >= 0", name="ck_order_line_received_nonneg"),
        sa.CheckConstraint("quantity_received <= quantity_ordered", name="ck_order_line_received_le_ordered"),
        sa.CheckConstraint("unit_price >= 0", name="ck_order_line_unit_price_nonneg"),
    )
    op.create_index("ix_supplier_order_lines_order_id", "supplier_order_lines", ["order_id"])
    op.create_index("ix_supplier_order_lines_product_id", "supplier_order_lines", ["product_id"])

    op.create_table(
        "product_suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("supplier_sku", sa.String(64)),
        sa.Column("supplier_product_name", sa.String(255)),
        sa.Column("cost_price", MONEY),
        sa.Column("currency_code", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("minimum_order_quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("lead_time_days", sa.Integer()),
        sa.Column("price_history", sa.JSON(), nullable=False),
        sa.Column("is_preferred_supplier", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_purchase_date", TS),
        sa.Column("last_price_update", TS),
        sa.Column("notes", sa.Text()),
        sa.Column("meta", sa.JSON()),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("product_id", "supplier_id", name="uq_product_supplier"),
        sa.CheckConstraint("cost_price IS NULL OR cost_price >= 0", name="ck_product_supplier_cost_nonneg"),
    )

    # --- ledger (append-only)
    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("movement_type", MOVEMENT_TYPE, nullable=False),
        sa.Column("reference_id", sa.String(64)),
        sa.Column("reference_type", sa.String(32)),
        sa.Column("order_line_id", sa.Integer()),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_title", sa.String(255), nullable=False),
        sa.Column("from_location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT")),
        sa.Column("from_location_name", sa.String(200)),
        sa.Column("to_location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT")),
        sa.Column("to_location_name", sa.String(200)),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost", MONEY),
        sa.Column("total_cost", MONEY),
        sa.Column("reason", sa.String(255)),
        sa.Column("notes", sa.Text()),
        sa.Column("performed_by", sa.String(64)),
        sa.Column("performed_at", TS, nullable=False),
        sa.Column("meta", sa.JSON()),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity <> 0", name="ck_inventory_movement_qty_nonzero"),
    )
    op.create_index("ix_inventory_movements_reference_id", "inventory_movements", ["reference_id"])
    op.create_index("ix_inventory_movements_product_time", "inventory_movements", ["product_id", "performed_at"])


def downgrade() -> None:
    op.drop_table("inventory_movements")
    op.drop_table("product_suppliers")
    op.drop_table("supplier_order_lines")
    op.drop_table("supplier_orders")
    op.drop_table("suppliers")
    op.drop_table("stock_levels")
    op.drop_table("users")
    op.drop_table("products")
    op.drop_table("locations")

    bind = op.get_bind()
    for enum in (MOVEMENT_TYPE, LINE_STATUS, ORDER_STATUS, ORDER_TYPE, SUPPLIER_TYPE):
        enum.drop(bind, checkfirst=True)
