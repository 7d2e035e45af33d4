from __future__ import annotations

from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.api.deps import get_db
from stockflow.app.db.models.models_v1 import Product
from stockflow.app.db.models.core_types import UnitType
from stockflow.app.schemas.product import ProductRead
from stockflow.services.catalog import ProductDraft, check_barcode, register_product
from stockflow.services.errors import StockFlowError

router = APIRouter(prefix="/products")


class ProductCreate(BaseModel):
    part_number: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    price: Decimal = Field(default=Decimal("0"), ge=0)
    piece_barcode: str | None = Field(default=None, max_length=64)
    pack_barcode: str | None = Field(default=None, max_length=64)
    box_barcode: str | None = Field(default=None, max_length=64)
    pieces_per_pack: int = Field(default=1, ge=1)
    packs_per_box: int = Field(default=1, ge=1)
    # register even if a barcode already belongs to another product
    force: bool = False


class BarcodeOwner(BaseModel):
    product_id: int
    part_number: str
    name: str
    unit_type: UnitType


class BarcodeCheckRead(BaseModel):
    kind: Literal["new", "duplicate"]
    barcode: str
    owners: list[BarcodeOwner] = []


@router.get("", response_model=list[ProductRead])
def list_products(db: Session = Depends(get_db)):
    return db.execute(select(Product).order_by(Product.part_number)).scalars().all()


@router.get("/barcode-check/{barcode}", response_model=BarcodeCheckRead)
def barcode_check(barcode: str, db: Session = Depends(get_db)):
    """Tell whether a barcode is free before registering a product with it."""
    check = check_barcode(db, barcode)
    return BarcodeCheckRead(
        kind=check.kind,
        barcode=check.barcode,
        owners=[
            BarcodeOwner(
                product_id=m.product.id,
                part_number=m.product.part_number,
                name=m.product.name,
                unit_type=m.unit,
            )
            for m in check.matches
        ],
    )


@router.post("", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    draft = ProductDraft(**payload.model_dump(exclude={"force"}))
    try:
        p = register_product(db, draft, force=payload.force)
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(p)
    return p
