from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.api.deps import get_db
from stockflow.app.db.models.models_v1 import StockIn
from stockflow.app.db.models.core_types import StockInStatus, TransactionKind, TransitionAction
from stockflow.app.schemas.transactions import StockInItemRead, StockInRead
from stockflow.services import transactions
from stockflow.services.errors import StockFlowError

router = APIRouter(prefix="/stock-in")


# ---------- Schemas ----------
class StockInCreate(BaseModel):
    invoice_code: str = Field(min_length=1, max_length=64)
    packing_list_number: str | None = Field(default=None, max_length=64)
    supplier_id: int | None = None
    receipt_date: date | None = None
    notes: str | None = None


class StockInItemCreate(BaseModel):
    barcode: str = Field(min_length=1, max_length=64)
    quantity: int
    price_per_unit: Decimal
    rack_id: int | None = None


class StockInItemUpdate(BaseModel):
    quantity: int | None = None
    price_per_unit: Decimal | None = None
    rack_id: int | None = None


class TransitionRequest(BaseModel):
    action: TransitionAction


# ---------- Endpoints ----------
@router.get("", response_model=list[StockInRead])
def list_stock_in(status: StockInStatus | None = None, db: Session = Depends(get_db)):
    stmt = select(StockIn).order_by(StockIn.id.desc())
    if status is not None:
        stmt = stmt.where(StockIn.status == status)
    return db.execute(stmt).scalars().all()


@router.post("", response_model=StockInRead, status_code=201)
def create_stock_in(payload: StockInCreate, db: Session = Depends(get_db)):
    try:
        header = transactions.create_stock_in(db, **payload.model_dump())
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(header)
    return header


@router.get("/{stock_in_id}", response_model=StockInRead)
def get_stock_in(stock_in_id: int, db: Session = Depends(get_db)):
    return transactions.get_stock_in(db, stock_in_id)


@router.post("/{stock_in_id}/items", response_model=StockInItemRead, status_code=201)
def add_item(stock_in_id: int, payload: StockInItemCreate, db: Session = Depends(get_db)):
    try:
        item = transactions.add_stock_in_item(db, stock_in_id, **payload.model_dump())
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(item)
    return item


@router.patch("/{stock_in_id}/items/{item_id}", response_model=StockInItemRead)
def update_item(stock_in_id: int, item_id: int, payload: StockInItemUpdate, db: Session = Depends(get_db)):
    try:
        item = transactions.update_stock_in_item(db, stock_in_id, item_id, **payload.model_dump())
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(item)
    return item


@router.delete("/{stock_in_id}/items/{item_id}", status_code=204)
def remove_item(stock_in_id: int, item_id: int, db: Session = Depends(get_db)):
    try:
        transactions.remove_stock_in_item(db, stock_in_id, item_id)
        db.commit()
    except StockFlowError:
        db.rollback()
        raise


@router.post("/{stock_in_id}/transition", response_model=StockInRead)
def transition_stock_in(
    stock_in_id: int,
    payload: TransitionRequest,
    db: Session = Depends(get_db),
    actor: str | None = Header(default=None, alias="X-Actor"),
):
    """
    pending -> completed : every line is received into its rack
    pending -> rejected  : nothing touches stock
    """
    try:
        header = transactions.transition(db, TransactionKind.stock_in, stock_in_id, payload.action, actor=actor)
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(header)
    return header
