from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stockflow.app.api.deps import get_db
from stockflow.app.db.models.models_v1 import Defect
from stockflow.app.db.models.core_types import DefectStatus, DefectType, UnitType
from stockflow.app.schemas.defect import DefectCapacityRead, DefectRead
from stockflow.services import defects
from stockflow.services.errors import StockFlowError

router = APIRouter(prefix="/defects")


# ---------- Schemas ----------
class DefectCreate(BaseModel):
    stock_in_item_id: int
    unit_type: UnitType
    quantity: int
    defect_type: DefectType
    defect_description: str | None = Field(default=None, max_length=2000)


class DefectStatusUpdate(BaseModel):
    status: DefectStatus


# ---------- Helpers ----------
def _read(defect: Defect) -> DefectRead:
    item = defect.stock_in_item
    rack = defect.rack
    return DefectRead(
        id=defect.id,
        stock_in_item_id=item.id,
        stock_in_id=item.stock_in_id,
        invoice_code=item.stock_in.invoice_code,
        receipt_date=item.stock_in.receipt_date,
        product_id=defect.product_id,
        product_name=defect.product.name,
        part_number=defect.product.part_number,
        rack_id=rack.id,
        rack_name=rack.name,
        container_name=rack.container.name,
        warehouse_name=rack.container.warehouse.name,
        unit_type=defect.unit_type,
        quantity=defect.quantity,
        defect_pieces=defect.defect_pieces,
        defect_type=defect.defect_type,
        defect_description=defect.defect_description,
        price_per_piece=defect.price_per_piece,
        estimated_loss=defect.estimated_loss,
        status=defect.status,
        reported_by=defect.reported_by,
        created_at=defect.created_at,
        closed_at=defect.closed_at,
    )


# ---------- Endpoints ----------
@router.get("", response_model=list[DefectRead])
def list_defects(status: DefectStatus | None = None, db: Session = Depends(get_db)):
    return [_read(d) for d in defects.list_defects(db, status=status)]


@router.get("/capacity", response_model=DefectCapacityRead)
def defect_capacity(stock_in_item_id: int, unit_type: UnitType, db: Session = Depends(get_db)):
    """READ ONLY: the most ``unit_type`` units that can still be reported on a stock in line."""
    return defects.max_defect_quantity(db, stock_in_item_id, unit_type)


@router.post("", response_model=DefectRead, status_code=201)
def report_defect(
    payload: DefectCreate,
    db: Session = Depends(get_db),
    actor: str | None = Header(default=None, alias="X-Actor"),
):
    """Report defective units; they leave the line's rack immediately."""
    try:
        defect = defects.report_defect(db, **payload.model_dump(), reported_by=actor)
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(defect)
    return _read(defect)


@router.get("/{defect_id}", response_model=DefectRead)
def get_defect(defect_id: int, db: Session = Depends(get_db)):
    return _read(defects.get_defect(db, defect_id))


@router.put("/{defect_id}/status", response_model=DefectRead)
def update_defect_status(
    defect_id: int,
    payload: DefectStatusUpdate,
    db: Session = Depends(get_db),
    actor: str | None = Header(default=None, alias="X-Actor"),
):
    """
    pending -> returned : loss confirmed, stock unchanged
    pending -> resolved : pieces go back onto the rack
    """
    try:
        defect = defects.update_defect_status(db, defect_id, payload.status, actor=actor)
        db.commit()
    except StockFlowError:
        db.rollback()
        raise
    db.refresh(defect)
    return _read(defect)
