"""initial schema

Revision ID: 4b1f0c2d9a7e
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4b1f0c2d9a7e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy persists enum member names
location_status = postgresql.ENUM("active", "inactive", name="location_status", create_type=False)
unit_type = postgresql.ENUM("piece", "pack", "box", name="unit_type", create_type=False)
movement_type = postgresql.ENUM("receipt", "issue", "reserve", "unreserve", name="movement_type", create_type=False)
stock_in_status = postgresql.ENUM("pending", "completed", "rejected", name="stock_in_status", create_type=False)
stock_out_status = postgresql.ENUM(
    "pending", "approved", "completed", "rejected", name="stock_out_status", create_type=False
)

ENUMS = (location_status, unit_type, movement_type, stock_in_status, stock_out_status)


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "warehouses",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("status", location_status, nullable=False),
    )
    op.create_table(
        "containers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("warehouse_id", sa.BigInteger(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.UniqueConstraint("warehouse_id", "name", name="uq_container_warehouse_name"),
    )
    op.create_table(
        "racks",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("container_id", sa.BigInteger(), sa.ForeignKey("containers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("rack_barcode", sa.String(64), unique=True),
        sa.Column("status", location_status, nullable=False),
        sa.UniqueConstraint("container_id", "name", name="uq_rack_container_name"),
    )
    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("contact_person", sa.String(255)),
    )
    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("part_number", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("piece_barcode", sa.String(64)),
        sa.Column("pack_barcode", sa.String(64)),
        sa.Column("box_barcode", sa.String(64)),
        sa.Column("pieces_per_pack", sa.Integer(), nullable=False),
        sa.Column("packs_per_box", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("pieces_per_pack >= 1", name="ck_product_pieces_per_pack_pos"),
        sa.CheckConstraint("packs_per_box >= 1", name="ck_product_packs_per_box_pos"),
        sa.CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
    )
    for column in ("piece_barcode", "pack_barcode", "box_barcode"):
        op.create_index(f"ix_products_{column}", "products", [column])

    op.create_table(
        "stock_levels",
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("rack_id", sa.BigInteger(), sa.ForeignKey("racks.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("qty_on_hand", sa.Integer(), nullable=False),
        sa.Column("qty_reserved", sa.Integer(), nullable=False),
        _timestamp("updated_at"),
        sa.CheckConstraint("qty_on_hand >= 0", name="ck_stock_on_hand_nonneg"),
        sa.CheckConstraint("qty_reserved >= 0", name="ck_stock_reserved_nonneg"),
        sa.CheckConstraint("qty_reserved <= qty_on_hand", name="ck_stock_reserved_le_on_hand"),
    )
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("rack_id", sa.BigInteger(), sa.ForeignKey("racks.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("movement_type", movement_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255)),
        sa.Column("source_type", sa.String(32)),
        sa.Column("source_id", sa.Integer()),
        _timestamp("happened_at"),
        sa.Column("idempotency_key", sa.String(64), nullable=False, unique=True),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_product_time", "stock_movements", ["product_id", "happened_at"])

    op.create_table(
        "stock_ins",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("invoice_code", sa.String(64), nullable=False, unique=True),
        sa.Column("packing_list_number", sa.String(64)),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT")),
        sa.Column("receipt_date", sa.Date()),
        sa.Column("notes", sa.Text()),
        sa.Column("status", stock_in_status, nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        _timestamp("completed_at", nullable=True),
    )
    op.create_table(
        "stock_in_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("stock_in_id", sa.BigInteger(), sa.ForeignKey("stock_ins.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("rack_id", sa.BigInteger(), sa.ForeignKey("racks.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("scanned_barcode", sa.String(64), nullable=False),
        sa.Column("detected_unit_type", unit_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_pieces", sa.Integer(), nullable=False),
        sa.Column("price_per_unit", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(16, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_in_item_qty_pos"),
        sa.CheckConstraint("total_pieces > 0", name="ck_stock_in_item_pieces_pos"),
    )
    op.create_index("ix_stock_in_items_stock_in_id", "stock_in_items", ["stock_in_id"])

    op.create_table(
        "stock_outs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("reference_number", sa.String(64), nullable=False, unique=True),
        sa.Column("department_name", sa.String(200), nullable=False),
        sa.Column("requestor_name", sa.String(200), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("status", stock_out_status, nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        _timestamp("approved_at", nullable=True),
        sa.Column("approved_by", sa.String(200)),
        _timestamp("completed_at", nullable=True),
    )
    op.create_table(
        "stock_out_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("stock_out_id", sa.BigInteger(), sa.ForeignKey("stock_outs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("scanned_barcode", sa.String(64), nullable=False),
        sa.Column("detected_unit_type", unit_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("pieces_per_pack", sa.Integer(), nullable=False),
        sa.Column("packs_per_box", sa.Integer(), nullable=False),
        sa.Column("conversion_overridden", sa.Boolean(), nullable=False),
        sa.Column("flexible", sa.Boolean(), nullable=False),
        sa.Column("total_pieces", sa.Integer(), nullable=False),
        sa.Column("price_per_unit", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(16, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_out_item_qty_pos"),
        sa.CheckConstraint("total_pieces > 0", name="ck_stock_out_item_pieces_pos"),
    )
    op.create_index("ix_stock_out_items_stock_out_id", "stock_out_items", ["stock_out_id"])

    op.create_table(
        "scan_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("scan_key", sa.String(64), nullable=False, unique=True),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("detected_unit_type", unit_type, nullable=False),
        sa.Column("pieces_deducted", sa.Integer(), nullable=False),
        sa.Column("amount_deducted", sa.Numeric(16, 2), nullable=False),
        sa.Column("remaining_stock", sa.Integer(), nullable=False),
        sa.Column("stock_out_id", sa.BigInteger(), sa.ForeignKey("stock_outs.id", ondelete="SET NULL")),
        _timestamp("created_at"),
    )
    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("actor", sa.String(200)),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("meta", sa.Text()),
        _timestamp("created_at"),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    for table in (
        "audit_log",
        "scan_events",
        "stock_out_items",
        "stock_outs",
        "stock_in_items",
        "stock_ins",
        "stock_movements",
        "stock_levels",
        "products",
        "suppliers",
        "racks",
        "containers",
        "warehouses",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
