from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.api.deps import get_db
from stockflow.app.db.models.models_v1 import StockOut
from stockflow.app.db.models.core_types import StockOutStatus, TransactionKind, TransitionAction
from stockflow.app.schemas.transactions import ScanDeductionRead, StockOutItemRead, StockOutRead
from stockflow.services import transactions
from stockflow.services.conversion import ConversionOverride
from stockflow.services.errors import StockFlowError
from stockflow.services.scan_deduct import scan_and_deduct

router = APIRouter(prefix="/stock-out")


# ---------- Schemas ----------
class StockOutCreate(BaseModel):
    reference_number: str = Field(min_length=1, max_length=64)
    department_name: str = Field(min_length=1, max_length=200)
    requestor_name: str = Field(min_length=1, max_length=200)
    notes: str | None = None


class OverrideIn(BaseModel):
    pieces_per_pack: int
    packs_per_box: int


class StockOutItemCreate(BaseModel):
    barcode: str = Field(min_length=1, max_length=64)
    quantity: int
    price_per_unit: Decimal
    # flexible mode: the operator counted the pieces of an opened pack/box
    actual_pieces: int | None = None
    conversion_override: OverrideIn | None = None


class StockOutItemUpdate(BaseModel):
    # omitted fields keep the stored line values
    quantity: int | None = None
    price_per_unit: Decimal | None = None
    actual_pieces: int | None = None
    conversion_override: OverrideIn | None = None
    reset_conversion: bool = False


class ScanRequest(BaseModel):
    barcode: str = Field(min_length=1, max_length=64)
    quantity: int
    stock_out_id: int | None = None


class TransitionRequest(BaseModel):
    action: TransitionAction


# ---------- Helpers ----------
def _override(payload: OverrideIn | None) -> ConversionOverride | None:
    if payload is None:
        return None
    return ConversionOverride(pieces_per_pack=payload.pieces_per_pack, packs_per_box=payload.packs_per_box)


# ---------- Endpoints ----------
@router.get("", response_model=list[StockOutRead])
def list_stock_out(status: StockOutStatus | None = None, db: Session = Depends(get_db)):
    stmt = select(StockOut).order_by(StockOut.id.desc())
    if status is not None:
        stmt = stmt.where(StockOut.status == status)
    return db.execute(stmt).scalars().all()


@router.post("", response_model=StockOutRead, status_code=201)
def create_stock_out(payload: StockOutCreate, db: Session = Depends(get_db)):
    try:
        header = transactions.create_stock_out(db, **payload.model_dump())
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(header)
    return header


@router.post("/scan", response_model=ScanDeductionRead)
def scan(
    payload: ScanRequest,
    db: Session = Depends(get_db),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    """
    Rapid stock out: one scan deducts immediately.

    Retrying with the same Idempotency-Key returns the first result and
    deducts nothing more.
    """
    try:
        result = scan_and_deduct(
            db,
            barcode=payload.barcode,
            quantity=payload.quantity,
            scan_key=idempotency_key,
            stock_out_id=payload.stock_out_id,
        )
        db.commit()
    except StockFlowError:
        db.rollback()
        raise

    return ScanDeductionRead(
        scan_id=result.scan_id,
        product_id=result.product.id,
        product_name=result.product.name,
        part_number=result.product.part_number,
        unit_type=result.unit_type,
        quantity=result.quantity,
        pieces_deducted=result.pieces_deducted,
        price_per_piece=result.price_per_piece,
        amount_deducted=result.amount_deducted,
        remaining_stock=result.remaining_stock,
        stock_out_id=result.stock_out_id,
        replayed=result.replayed,
    )


@router.get("/{stock_out_id}", response_model=StockOutRead)
def get_stock_out(stock_out_id: int, db: Session = Depends(get_db)):
    return transactions.get_stock_out(db, stock_out_id)


@router.post("/{stock_out_id}/items", response_model=StockOutItemRead, status_code=201)
def add_item(stock_out_id: int, payload: StockOutItemCreate, db: Session = Depends(get_db)):
    try:
        item = transactions.add_stock_out_item(
            db,
            stock_out_id,
            barcode=payload.barcode,
            quantity=payload.quantity,
            price_per_unit=payload.price_per_unit,
            actual_pieces=payload.actual_pieces,
            override=_override(payload.conversion_override),
        )
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(item)
    return item


@router.patch("/{stock_out_id}/items/{item_id}", response_model=StockOutItemRead)
def update_item(stock_out_id: int, item_id: int, payload: StockOutItemUpdate, db: Session = Depends(get_db)):
    try:
        item = transactions.update_stock_out_item(
            db,
            stock_out_id,
            item_id,
            quantity=payload.quantity,
            price_per_unit=payload.price_per_unit,
            actual_pieces=payload.actual_pieces,
            override=_override(payload.conversion_override),
            reset_conversion=payload.reset_conversion,
        )
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(item)
    return item


@router.delete("/{stock_out_id}/items/{item_id}", status_code=204)
def remove_item(stock_out_id: int, item_id: int, db: Session = Depends(get_db)):
    try:
        transactions.remove_stock_out_item(db, stock_out_id, item_id)
        db.commit()
    except StockFlowError:
        db.rollback()
        raise


@router.post("/{stock_out_id}/transition", response_model=StockOutRead)
def transition_stock_out(
    stock_out_id: int,
    payload: TransitionRequest,
    db: Session = Depends(get_db),
    actor: str | None = Header(default=None, alias="X-Actor"),
):
    """
    pending  -> approved  : reserve the requested pieces
    approved -> completed : issue what was reserved
    *        -> rejected  : release any reservation
    """
    try:
        header = transactions.transition(db, TransactionKind.stock_out, stock_out_id, payload.action, actor=actor)
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(header)
    return header
