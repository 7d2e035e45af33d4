from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.core.logging import get_logger, setup_logging
from stockflow.app.db.session import SessionLocal
from stockflow.app.db.models.models_v1 import Container, Rack, Supplier, Warehouse
from stockflow.services.catalog import ProductDraft, lookup_by_barcode, register_product

logger = get_logger("seed")

DEMO_PRODUCTS = (
    ProductDraft(
        part_number="BLT-M8-40",
        name="Hex bolt M8x40",
        price=Decimal("0.35"),
        piece_barcode="8991000000011",
        pack_barcode="8991000000028",
        box_barcode="8991000000035",
        pieces_per_pack=10,
        packs_per_box=5,
    ),
    ProductDraft(
        part_number="GLV-NTR-L",
        name="Nitrile gloves L",
        price=Decimal("0.20"),
        pack_barcode="8991000000042",
        box_barcode="8991000000059",
        pieces_per_pack=100,
        packs_per_box=10,
    ),
)


def _get_or_create(db: Session, model, **fields):
    obj = db.scalar(select(model).filter_by(**fields))
    if not obj:
        obj = model(**fields)
        db.add(obj)
        db.flush()
    return obj


def run_seed():
    setup_logging()
    db = SessionLocal()
    try:
        # 1) Warehouse / container / racks
        warehouse = _get_or_create(db, Warehouse, name="Main warehouse")
        container = _get_or_create(db, Container, warehouse_id=warehouse.id, name="Container A")
        for name in ("A-01", "A-02"):
            _get_or_create(db, Rack, container_id=container.id, name=name)

        # 2) Supplier
        _get_or_create(db, Supplier, name="Default supplier")

        # 3) Products (stock only arrives through stock in)
        for draft in DEMO_PRODUCTS:
            if not any(lookup_by_barcode(db, b) for b in draft.barcodes().values()):
                register_product(db, draft)

        db.commit()
        logger.info("seed ok: warehouse=%s racks=2 products=%s", warehouse.name, len(DEMO_PRODUCTS))
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
