from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.api.deps import get_db
from stockflow.app.db.models.models_v1 import Container, Product, Rack, StockLevel
from stockflow.app.schemas.product import ScanResultRead
from stockflow.app.schemas.stock_level import StockLevelRead
from stockflow.services.resolver import resolve_barcode

router = APIRouter(prefix="/stock")


class BarcodeStockRead(BaseModel):
    scan: ScanResultRead
    levels: list[StockLevelRead]


@router.get(
    "",
    response_model=list[StockLevelRead],
)
def get_stock(
    warehouse_id: int | None = None,
    rack_id: int | None = None,
    product_id: int | None = None,
    db: Session = Depends(get_db),
):
    """
    Stock (READ ONLY)
    - quantities only change through stock in / stock out / scans
    """

    stmt = (
        select(StockLevel)
        .join(Rack, Rack.id == StockLevel.rack_id)
        .join(Container, Container.id == Rack.container_id)
        .join(Product, Product.id == StockLevel.product_id)
        .order_by(Container.warehouse_id, StockLevel.rack_id, Product.part_number)
    )

    if warehouse_id is not None:
        stmt = stmt.where(Container.warehouse_id == warehouse_id)

    if rack_id is not None:
        stmt = stmt.where(StockLevel.rack_id == rack_id)

    if product_id is not None:
        stmt = stmt.where(StockLevel.product_id == product_id)

    return db.execute(stmt).scalars().all()


@router.get("/by-barcode/{barcode}", response_model=BarcodeStockRead)
def get_stock_by_barcode(barcode: str, db: Session = Depends(get_db)):
    scan = resolve_barcode(db, barcode)
    levels = (
        db.execute(
            select(StockLevel)
            .where(StockLevel.product_id == scan.product.id)
            .where(StockLevel.qty_on_hand > 0)
            .order_by(StockLevel.rack_id)
        )
        .scalars()
        .all()
    )
    return BarcodeStockRead(
        scan=ScanResultRead.from_scan(scan),
        levels=[StockLevelRead.model_validate(sl) for sl in levels],
    )
