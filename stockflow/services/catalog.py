"""
Product / barcode catalog.

A product carries up to three barcodes, one per granularity. Barcodes are
not unique at the database level: registering a barcode that already
belongs to another product is refused unless the caller passes
``force=True``. Resolution then reports such a barcode as ambiguous
instead of picking one of the products.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from stockflow.app.core.logging import get_logger
from stockflow.app.db.models.models_v1 import Product
from stockflow.app.db.models.core_types import UnitType
from stockflow.services.conversion import ConversionFactors
from stockflow.services.errors import DuplicateBarcode, NotFound, ValidationError

logger = get_logger("catalog")


@dataclass(frozen=True)
class BarcodeMatch:
    product: Product
    unit: UnitType


@dataclass(frozen=True)
class BarcodeCheck:
    """Outcome of checking a barcode before registering it."""

    kind: Literal["new", "duplicate"]
    barcode: str
    matches: list[BarcodeMatch] = field(default_factory=list)


@dataclass
class ProductDraft:
    part_number: str
    name: str
    price: Decimal = Decimal("0")
    description: str | None = None
    piece_barcode: str | None = None
    pack_barcode: str | None = None
    box_barcode: str | None = None
    pieces_per_pack: int = 1
    packs_per_box: int = 1

    def barcodes(self) -> dict[UnitType, str]:
        out = {}
        for unit in UnitType:
            value = getattr(self, f"{unit.value}_barcode")
            if value is not None and value.strip():
                out[unit] = value.strip()
        return out


def normalize_barcode(barcode: str | None) -> str:
    value = (barcode or "").strip()
    if not value:
        raise ValidationError("Barcode must not be empty", field="barcode")
    return value


def lookup_by_barcode(db: Session, barcode: str) -> list[BarcodeMatch]:
    """Every (product, unit) pair whose barcode field equals ``barcode``."""
    barcode = normalize_barcode(barcode)
    rows = (
        db.execute(
            select(Product)
            .where(Product.active.is_(True))
            .where(
                or_(
                    Product.piece_barcode == barcode,
                    Product.pack_barcode == barcode,
                    Product.box_barcode == barcode,
                )
            )
            .order_by(Product.id.asc())
        )
        .scalars()
        .all()
    )
    return [BarcodeMatch(product=p, unit=u) for p in rows for u in UnitType if p.barcode_for(u) == barcode]


def check_barcode(db: Session, barcode: str, *, exclude_product_id: int | None = None) -> BarcodeCheck:
    barcode = normalize_barcode(barcode)
    matches = [m for m in lookup_by_barcode(db, barcode) if m.product.id != exclude_product_id]
    if matches:
        return BarcodeCheck(kind="duplicate", barcode=barcode, matches=matches)
    return BarcodeCheck(kind="new", barcode=barcode)


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise NotFound("Product not found", product_id=product_id)
    return product


def register_product(db: Session, draft: ProductDraft, *, force: bool = False) -> Product:
    """
    Create a product.

    Rules:
    - at least one barcode
    - a barcode string is used for one granularity only within the product
    - a barcode owned by another product needs ``force=True``
    """
    barcodes = draft.barcodes()
    if not barcodes:
        raise ValidationError("Provide at least one barcode (piece, pack or box)", field="barcodes")

    seen: dict[str, UnitType] = {}
    for unit, value in barcodes.items():
        if value in seen:
            raise ValidationError(
                "The same barcode cannot identify two unit types of one product",
                barcode=value,
                units=[seen[value].value, unit.value],
            )
        seen[value] = unit

    # validates the factors (InvalidConversion on < 1)
    ConversionFactors(draft.pieces_per_pack, draft.packs_per_box)

    if draft.price < 0:
        raise ValidationError("Price cannot be negative", field="price")

    exists = db.execute(select(Product).where(Product.part_number == draft.part_number)).scalar_one_or_none()
    if exists:
        raise ValidationError("Part number already exists", part_number=draft.part_number, product_id=exists.id)

    conflicts = []
    for value in barcodes.values():
        check = check_barcode(db, value)
        if check.kind == "duplicate":
            conflicts.extend(
                {"barcode": value, "product_id": m.product.id, "unit_type": m.unit.value} for m in check.matches
            )
    if conflicts and not force:
        raise DuplicateBarcode("Barcode already registered to another product", conflicts=conflicts)
    if conflicts:
        logger.warning("forced registration of %s with reused barcodes %s", draft.part_number, conflicts)

    product = Product(
        part_number=draft.part_number,
        name=draft.name,
        description=draft.description,
        price=draft.price,
        piece_barcode=barcodes.get(UnitType.piece),
        pack_barcode=barcodes.get(UnitType.pack),
        box_barcode=barcodes.get(UnitType.box),
        pieces_per_pack=draft.pieces_per_pack,
        packs_per_box=draft.packs_per_box,
    )
    db.add(product)
    db.flush()

    logger.info("registered product id=%s part_number=%s", product.id, product.part_number)
    return product
