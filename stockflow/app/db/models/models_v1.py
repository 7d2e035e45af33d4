from __future__ import annotations

from datetime import datetime, date, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockflow.app.db.base import Base, BigIntPK
from stockflow.app.db.models.core_types import (
    UnitType,
    LocationStatus,
    MovementType,
    StockInStatus,
    StockOutStatus,
    DefectStatus,
    DefectType,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- STORAGE LOCATIONS ----------
class Warehouse(Base):
    __tablename__ = "warehouses"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    status: Mapped[LocationStatus] = mapped_column(
        Enum(LocationStatus, name="location_status"),
        default=LocationStatus.active,
        nullable=False,
    )

    containers: Mapped[list["Container"]] = relationship(back_populates="warehouse")


class Container(Base):
    __tablename__ = "containers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    warehouse: Mapped[Warehouse] = relationship(back_populates="containers")
    racks: Mapped[list["Rack"]] = relationship(back_populates="container")

    __table_args__ = (UniqueConstraint("warehouse_id", "name", name="uq_container_warehouse_name"),)


class Rack(Base):
    __tablename__ = "racks"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    container_id: Mapped[int] = mapped_column(ForeignKey("containers.id", ondelete="RESTRICT"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    rack_barcode: Mapped[str | None] = mapped_column(String(64), unique=True)
    status: Mapped[LocationStatus] = mapped_column(
        Enum(LocationStatus, name="location_status"),
        default=LocationStatus.active,
        nullable=False,
    )

    container: Mapped[Container] = relationship(back_populates="racks")

    __table_args__ = (UniqueConstraint("container_id", "name", name="uq_rack_container_name"),)


# ---------- MASTER DATA ----------
class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(255))


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    part_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)

    # Not unique: a barcode may be force-registered on a second product
    piece_barcode: Mapped[str | None] = mapped_column(String(64), index=True)
    pack_barcode: Mapped[str | None] = mapped_column(String(64), index=True)
    box_barcode: Mapped[str | None] = mapped_column(String(64), index=True)

    pieces_per_pack: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    packs_per_box: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("pieces_per_pack >= 1", name="ck_product_pieces_per_pack_pos"),
        CheckConstraint("packs_per_box >= 1", name="ck_product_packs_per_box_pos"),
        CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
    )

    @property
    def total_pieces_per_box(self) -> int:
        return self.pieces_per_pack * self.packs_per_box

    def barcode_for(self, unit: UnitType) -> str | None:
        return getattr(self, f"{unit.value}_barcode")


# ---------- LEDGER ----------
class StockLevel(Base):
    __tablename__ = "stock_levels"
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True)
    rack_id: Mapped[int] = mapped_column(ForeignKey("racks.id", ondelete="RESTRICT"), primary_key=True)

    qty_on_hand: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    qty_reserved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    rack: Mapped[Rack] = relationship()

    __table_args__ = (
        CheckConstraint("qty_on_hand >= 0", name="ck_stock_on_hand_nonneg"),
        CheckConstraint("qty_reserved >= 0", name="ck_stock_reserved_nonneg"),
        CheckConstraint("qty_reserved <= qty_on_hand", name="ck_stock_reserved_le_on_hand"),
    )

    @property
    def qty_available(self) -> int:
        return self.qty_on_hand - self.qty_reserved


class StockMovement(Base):
    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    rack_id: Mapped[int] = mapped_column(ForeignKey("racks.id", ondelete="RESTRICT"), nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(Enum(MovementType, name="movement_type"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255))

    # what caused the movement: "stock_in", "stock_out", "scan" or "defect"
    source_type: Mapped[str | None] = mapped_column(String(32))
    source_id: Mapped[int | None] = mapped_column(Integer)

    happened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        Index("ix_stock_movements_product_time", "product_id", "happened_at"),
    )


# ---------- STOCK IN ----------
class StockIn(Base):
    __tablename__ = "stock_ins"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    invoice_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    packing_list_number: Mapped[str | None] = mapped_column(String(64))
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"))
    receipt_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)

    status: Mapped[StockInStatus] = mapped_column(
        Enum(StockInStatus, name="stock_in_status"),
        default=StockInStatus.pending,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    supplier: Mapped[Supplier | None] = relationship()
    items: Mapped[list["StockInItem"]] = relationship(
        back_populates="stock_in",
        cascade="all, delete-orphan",
        order_by="StockInItem.id",
    )


class StockInItem(Base):
    __tablename__ = "stock_in_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    stock_in_id: Mapped[int] = mapped_column(
        ForeignKey("stock_ins.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    rack_id: Mapped[int] = mapped_column(ForeignKey("racks.id", ondelete="RESTRICT"), nullable=False)

    scanned_barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    detected_unit_type: Mapped[UnitType] = mapped_column(Enum(UnitType, name="unit_type"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    stock_in: Mapped[StockIn] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()
    rack: Mapped[Rack] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_in_item_qty_pos"),
        CheckConstraint("total_pieces > 0", name="ck_stock_in_item_pieces_pos"),
    )


# ---------- STOCK OUT ----------
class StockOut(Base):
    __tablename__ = "stock_outs"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    reference_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    department_name: Mapped[str] = mapped_column(String(200), nullable=False)
    requestor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    status: Mapped[StockOutStatus] = mapped_column(
        Enum(StockOutStatus, name="stock_out_status"),
        default=StockOutStatus.pending,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[str | None] = mapped_column(String(200))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    items: Mapped[list["StockOutItem"]] = relationship(
        back_populates="stock_out",
        cascade="all, delete-orphan",
        order_by="StockOutItem.id",
    )


class StockOutItem(Base):
    __tablename__ = "stock_out_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    stock_out_id: Mapped[int] = mapped_column(
        ForeignKey("stock_outs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    scanned_barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    detected_unit_type: Mapped[UnitType] = mapped_column(Enum(UnitType, name="unit_type"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # factors actually used for this line (catalog values or an override)
    pieces_per_pack: Mapped[int] = mapped_column(Integer, nullable=False)
    packs_per_box: Mapped[int] = mapped_column(Integer, nullable=False)
    conversion_overridden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    flexible: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    stock_out: Mapped[StockOut] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_out_item_qty_pos"),
        CheckConstraint("total_pieces > 0", name="ck_stock_out_item_pieces_pos"),
    )


class ScanEvent(Base):
    __tablename__ = "scan_events"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    scan_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    detected_unit_type: Mapped[UnitType] = mapped_column(Enum(UnitType, name="unit_type"), nullable=False)
    pieces_deducted: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_piece: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_deducted: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    remaining_stock: Mapped[int] = mapped_column(Integer, nullable=False)

    stock_out_id: Mapped[int | None] = mapped_column(ForeignKey("stock_outs.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    product: Mapped[Product] = relationship()


# ---------- DEFECTS ----------
class Defect(Base):
    __tablename__ = "defects"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    stock_in_item_id: Mapped[int] = mapped_column(
        ForeignKey("stock_in_items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    rack_id: Mapped[int] = mapped_column(ForeignKey("racks.id", ondelete="RESTRICT"), nullable=False)

    unit_type: Mapped[UnitType] = mapped_column(Enum(UnitType, name="unit_type"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    defect_pieces: Mapped[int] = mapped_column(Integer, nullable=False)
    defect_type: Mapped[DefectType] = mapped_column(Enum(DefectType, name="defect_type"), nullable=False)
    defect_description: Mapped[str | None] = mapped_column(Text)

    # valued at the receipt price of the stock in line
    price_per_piece: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    estimated_loss: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    status: Mapped[DefectStatus] = mapped_column(
        Enum(DefectStatus, name="defect_status"),
        default=DefectStatus.pending,
        nullable=False,
    )
    reported_by: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    stock_in_item: Mapped[StockInItem] = relationship()
    product: Mapped[Product] = relationship()
    rack: Mapped[Rack] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_defect_qty_pos"),
        CheckConstraint("defect_pieces > 0", name="ck_defect_pieces_pos"),
    )


# ---------- AUDIT ----------
class AuditLog(Base):
    __tablename__ = "audit_log"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor: Mapped[str | None] = mapped_column(String(200))
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meta: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_entity", "entity_type", "entity_id"),)
