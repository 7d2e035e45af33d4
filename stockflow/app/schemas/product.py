from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from stockflow.app.db.models.core_types import UnitType
from stockflow.services.resolver import ScanResult


class ProductRead(BaseModel):
    id: int
    part_number: str
    name: str
    description: str | None = None
    price: Decimal

    piece_barcode: str | None = None
    pack_barcode: str | None = None
    box_barcode: str | None = None

    pieces_per_pack: int
    packs_per_box: int
    total_pieces_per_box: int
    active: bool

    class Config:
        from_attributes = True


class ScanInfo(BaseModel):
    scanned_barcode: str
    detected_unit_type: UnitType
    available_units: int
    total_pieces_in_stock: int
    storage_locations: int


class UnitConversionRead(BaseModel):
    pieces_per_pack: int
    packs_per_box: int
    total_pieces_per_box: int


class ScanResultRead(BaseModel):
    product: ProductRead
    scan_info: ScanInfo
    unit_conversion: UnitConversionRead

    @classmethod
    def from_scan(cls, scan: ScanResult) -> "ScanResultRead":
        return cls(
            product=ProductRead.model_validate(scan.product),
            scan_info=ScanInfo(
                scanned_barcode=scan.scanned_barcode,
                detected_unit_type=scan.detected_unit_type,
                available_units=scan.available_units,
                total_pieces_in_stock=scan.total_pieces_in_stock,
                storage_locations=scan.storage_locations,
            ),
            unit_conversion=UnitConversionRead(
                pieces_per_pack=scan.factors.pieces_per_pack,
                packs_per_box=scan.factors.packs_per_box,
                total_pieces_per_box=scan.factors.total_pieces_per_box,
            ),
        )
