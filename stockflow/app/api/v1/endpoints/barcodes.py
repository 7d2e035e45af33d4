from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from stockflow.app.api.deps import get_db
from stockflow.app.db.models.core_types import ScanPurpose
from stockflow.app.schemas.product import ScanResultRead
from stockflow.services.resolver import resolve_barcode, resolve_for_stock_in

router = APIRouter(prefix="/barcodes")


class BarcodeResolution(BaseModel):
    status: Literal["found", "new_product"]
    barcode: str
    scan: ScanResultRead | None = None


@router.get("/{barcode}", response_model=BarcodeResolution)
def resolve(barcode: str, purpose: ScanPurpose = ScanPurpose.stock_out, db: Session = Depends(get_db)):
    """
    Resolve a scanned barcode (READ ONLY).

    - stock_out: an unknown barcode is a 404
    - stock_in : an unknown barcode answers status=new_product
    """
    if purpose is ScanPurpose.stock_in:
        scan = resolve_for_stock_in(db, barcode)
        if scan is None:
            return BarcodeResolution(status="new_product", barcode=barcode.strip())
    else:
        scan = resolve_barcode(db, barcode)
    return BarcodeResolution(status="found", barcode=scan.scanned_barcode, scan=ScanResultRead.from_scan(scan))
