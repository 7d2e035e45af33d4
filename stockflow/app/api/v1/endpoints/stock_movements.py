from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.api.deps import get_db
from stockflow.app.db.models.models_v1 import StockMovement
from stockflow.app.db.models.core_types import MovementType

router = APIRouter(prefix="/stock-movements")


class StockMovementRead(BaseModel):
    id: int
    product_id: int
    rack_id: int
    movement_type: MovementType
    quantity: int
    reason: str | None = None
    source_type: str | None = None
    source_id: int | None = None
    happened_at: datetime
    idempotency_key: str

    class Config:
        from_attributes = True


@router.get("", response_model=list[StockMovementRead])
def list_movements(
    product_id: int | None = None,
    rack_id: int | None = None,
    movement_type: MovementType | None = None,
    source_type: str | None = None,
    source_id: int | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Movement journal (READ ONLY), newest first."""
    stmt = select(StockMovement).order_by(StockMovement.id.desc()).limit(limit)

    if product_id is not None:
        stmt = stmt.where(StockMovement.product_id == product_id)
    if rack_id is not None:
        stmt = stmt.where(StockMovement.rack_id == rack_id)
    if movement_type is not None:
        stmt = stmt.where(StockMovement.movement_type == movement_type)
    if source_type is not None:
        stmt = stmt.where(StockMovement.source_type == source_type)
    if source_id is not None:
        stmt = stmt.where(StockMovement.source_id == source_id)

    return db.execute(stmt).scalars().all()
