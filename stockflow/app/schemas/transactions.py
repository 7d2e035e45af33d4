from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from stockflow.app.db.models.core_types import StockInStatus, StockOutStatus, UnitType


class StockInItemRead(BaseModel):
    id: int
    product_id: int
    rack_id: int
    scanned_barcode: str
    detected_unit_type: UnitType
    quantity: int
    total_pieces: int
    price_per_unit: Decimal
    total_amount: Decimal

    class Config:
        from_attributes = True


class StockInRead(BaseModel):
    id: int
    invoice_code: str
    packing_list_number: str | None = None
    supplier_id: int | None = None
    receipt_date: date | None = None
    notes: str | None = None
    status: StockInStatus
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    items: list[StockInItemRead] = []

    class Config:
        from_attributes = True


class StockOutItemRead(BaseModel):
    id: int
    product_id: int
    scanned_barcode: str
    detected_unit_type: UnitType
    quantity: int
    pieces_per_pack: int
    packs_per_box: int
    conversion_overridden: bool
    flexible: bool
    total_pieces: int
    price_per_unit: Decimal
    total_amount: Decimal

    class Config:
        from_attributes = True


class StockOutRead(BaseModel):
    id: int
    reference_number: str
    department_name: str
    requestor_name: str
    notes: str | None = None
    status: StockOutStatus
    created_at: datetime
    updated_at: datetime
    approved_at: datetime | None = None
    approved_by: str | None = None
    completed_at: datetime | None = None
    items: list[StockOutItemRead] = []

    class Config:
        from_attributes = True


class ScanDeductionRead(BaseModel):
    scan_id: int
    product_id: int
    product_name: str
    part_number: str
    unit_type: UnitType
    quantity: int
    pieces_deducted: int
    price_per_piece: Decimal
    amount_deducted: Decimal
    remaining_stock: int
    stock_out_id: int | None = None
    replayed: bool
