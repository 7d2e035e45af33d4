"""
Barcode resolution: scanned string -> product + detected unit + stock.

Read only. Resolving the same barcode twice gives the same answer and
writes nothing.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from stockflow.app.db.models.models_v1 import Product
from stockflow.app.db.models.core_types import UnitType
from stockflow.services import ledger
from stockflow.services.catalog import lookup_by_barcode, normalize_barcode
from stockflow.services.conversion import ConversionFactors, from_pieces
from stockflow.services.errors import AmbiguousBarcode, NotFound


@dataclass(frozen=True)
class ScanResult:
    product: Product
    scanned_barcode: str
    detected_unit_type: UnitType
    available_units: int
    total_pieces_in_stock: int
    storage_locations: int
    factors: ConversionFactors


def _match_one(db: Session, barcode: str):
    matches = lookup_by_barcode(db, barcode)
    if not matches:
        return None
    if len(matches) > 1:
        raise AmbiguousBarcode(
            "Barcode matches more than one product or unit type",
            barcode=barcode,
            candidates=[{"product_id": m.product.id, "unit_type": m.unit.value} for m in matches],
        )
    return matches[0]


def _scan_result(db: Session, barcode: str, match) -> ScanResult:
    product = match.product
    factors = ConversionFactors.of(product)
    balance = ledger.get_available_pieces(db, product.id)
    return ScanResult(
        product=product,
        scanned_barcode=barcode,
        detected_unit_type=match.unit,
        available_units=from_pieces(match.unit, max(balance.total_pieces, 0), factors.pieces_per_pack, factors.packs_per_box),
        total_pieces_in_stock=balance.total_pieces,
        storage_locations=balance.location_count,
        factors=factors,
    )


def resolve_barcode(db: Session, barcode: str) -> ScanResult:
    """Resolve for withdrawal: an unknown barcode is an error (NotFound)."""
    barcode = normalize_barcode(barcode)
    match = _match_one(db, barcode)
    if match is None:
        raise NotFound("No product registered for this barcode", barcode=barcode)
    return _scan_result(db, barcode, match)


def resolve_for_stock_in(db: Session, barcode: str) -> ScanResult | None:
    """
    Resolve for receiving. None means the barcode is not in the catalog
    yet and the caller should go through product registration.
    """
    barcode = normalize_barcode(barcode)
    match = _match_one(db, barcode)
    if match is None:
        return None
    return _scan_result(db, barcode, match)
