"""defects, scan price per piece

Revision ID: 9c3e5a7d1f20
Revises: 4b1f0c2d9a7e
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "9c3e5a7d1f20"
down_revision: Union[str, Sequence[str], None] = "4b1f0c2d9a7e"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

unit_type = postgresql.ENUM("piece", "pack", "box", name="unit_type", create_type=False)
defect_status = postgresql.ENUM("pending", "returned", "resolved", name="defect_status", create_type=False)
defect_type = postgresql.ENUM(
    "damaged", "expired", "wrong_item", "missing_parts", "other", name="defect_type", create_type=False
)

ENUMS = (defect_status, defect_type)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # existing scans are backfilled with the current catalog price
    op.add_column("scan_events", sa.Column("price_per_piece", sa.Numeric(14, 2), nullable=True))
    op.execute(
        "UPDATE scan_events SET price_per_piece = products.price "
        "FROM products WHERE products.id = scan_events.product_id"
    )
    op.alter_column("scan_events", "price_per_piece", nullable=False)

    op.create_table(
        "defects",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "stock_in_item_id",
            sa.BigInteger(),
            sa.ForeignKey("stock_in_items.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("rack_id", sa.BigInteger(), sa.ForeignKey("racks.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("unit_type", unit_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("defect_pieces", sa.Integer(), nullable=False),
        sa.Column("defect_type", defect_type, nullable=False),
        sa.Column("defect_description", sa.Text()),
        sa.Column("price_per_piece", sa.Numeric(14, 2), nullable=False),
        sa.Column("estimated_loss", sa.Numeric(16, 2), nullable=False),
        sa.Column("status", defect_status, nullable=False),
        sa.Column("reported_by", sa.String(200)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("quantity > 0", name="ck_defect_qty_pos"),
        sa.CheckConstraint("defect_pieces > 0", name="ck_defect_pieces_pos"),
    )
    op.create_index("ix_defects_stock_in_item_id", "defects", ["stock_in_item_id"])


def downgrade() -> None:
    op.drop_index("ix_defects_stock_in_item_id", table_name="defects")
    op.drop_table("defects")
    op.drop_column("scan_events", "price_per_piece")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
