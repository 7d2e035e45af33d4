from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from stockflow.app.db.models.core_types import DefectStatus, DefectType, UnitType


class DefectRead(BaseModel):
    id: int
    stock_in_item_id: int
    stock_in_id: int
    invoice_code: str
    receipt_date: date | None = None

    product_id: int
    product_name: str
    part_number: str

    rack_id: int
    rack_name: str
    container_name: str
    warehouse_name: str

    unit_type: UnitType
    quantity: int
    defect_pieces: int
    defect_type: DefectType
    defect_description: str | None = None
    price_per_piece: Decimal
    estimated_loss: Decimal  # READ ONLY: defect_pieces * price_per_piece

    status: DefectStatus
    reported_by: str | None = None
    created_at: datetime
    closed_at: datetime | None = None


class DefectCapacityRead(BaseModel):
    stock_in_item_id: int
    unit_type: UnitType
    unit_size: int
    available_pieces: int
    max_quantity: int

    class Config:
        from_attributes = True
