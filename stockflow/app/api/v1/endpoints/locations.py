from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from stockflow.app.api.deps import get_db
from stockflow.app.db.models.models_v1 import Container, Rack

router = APIRouter(prefix="/locations")


@router.get("")
def list_locations(
    warehouse_id: int | None = None,
    db: Session = Depends(get_db),
):
    """Racks with their container and warehouse, for the stock in rack picker."""
    stmt = (
        select(Rack)
        .join(Container, Container.id == Rack.container_id)
        .options(joinedload(Rack.container).joinedload(Container.warehouse))
        .order_by(Container.warehouse_id, Rack.container_id, Rack.id)
    )
    if warehouse_id is not None:
        stmt = stmt.where(Container.warehouse_id == warehouse_id)

    rows = db.execute(stmt).scalars().all()
    return [
        {
            "id": r.id,
            "name": r.name,
            "rack_barcode": r.rack_barcode,
            "status": r.status.value,
            "container_id": r.container_id,
            "container_name": r.container.name,
            "warehouse_id": r.container.warehouse_id,
            "warehouse_name": r.container.warehouse.name,
        }
        for r in rows
    ]
