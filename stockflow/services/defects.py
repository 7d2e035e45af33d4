"""
Defect reports against received stock.

A defect points at one line of a completed stock in. Reporting takes the
defective pieces out of that line's rack straight away; closing the report
either confirms the loss (returned to the supplier) or puts the pieces
back on the rack (resolved, e.g. repaired or found usable).

    pending -> returned : no stock change
    pending -> resolved : pieces received back into the rack

Functions flush but never commit; endpoints own the transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockflow.app.core.logging import get_logger
from stockflow.app.db.models.models_v1 import Defect, StockInItem, StockLevel, utcnow
from stockflow.app.db.models.core_types import DefectStatus, DefectType, StockInStatus, UnitType
from stockflow.services import ledger
from stockflow.services.conversion import ConversionFactors, to_pieces
from stockflow.services.errors import InvalidState, NotFound, ValidationError
from stockflow.services.sufficiency import validate_sufficiency
from stockflow.services.transactions import record_audit

logger = get_logger("defects")

CENT = Decimal("0.01")
CLOSING_STATUSES = (DefectStatus.returned, DefectStatus.resolved)


@dataclass(frozen=True)
class DefectCapacity:
    """How much of a stock in line can still be reported, in pieces and in ``unit_type``."""

    stock_in_item_id: int
    unit_type: UnitType
    unit_size: int
    available_pieces: int
    max_quantity: int


def _get_stock_in_item(db: Session, stock_in_item_id: int) -> StockInItem:
    item = db.get(StockInItem, stock_in_item_id)
    if not item:
        raise NotFound("Stock in item not found", stock_in_item_id=stock_in_item_id)
    if item.stock_in.status is not StockInStatus.completed:
        raise InvalidState(
            "Defects can only be reported on completed stock in",
            stock_in_id=item.stock_in_id,
            status=item.stock_in.status.value,
        )
    return item


def _open_defect_pieces(db: Session, stock_in_item_id: int) -> int:
    total = db.scalar(
        select(func.coalesce(func.sum(Defect.defect_pieces), 0))
        .where(Defect.stock_in_item_id == stock_in_item_id)
        .where(Defect.status != DefectStatus.resolved)
    )
    return int(total)


def _capacity(db: Session, item: StockInItem, unit_type: UnitType) -> DefectCapacity:
    try:
        unit_type = UnitType(unit_type)
    except ValueError:
        raise ValidationError(f"Unknown unit type {unit_type!r}", field="unit_type") from None

    level = db.get(StockLevel, (item.product_id, item.rack_id))
    on_rack = level.qty_available if level else 0
    # a line cannot lose more pieces than it brought in
    left_on_line = item.total_pieces - _open_defect_pieces(db, item.id)
    available = max(min(on_rack, left_on_line), 0)

    unit_size = ConversionFactors.of(item.product).unit_size(unit_type)
    return DefectCapacity(
        stock_in_item_id=item.id,
        unit_type=unit_type,
        unit_size=unit_size,
        available_pieces=available,
        max_quantity=available // unit_size,
    )


def max_defect_quantity(db: Session, stock_in_item_id: int, unit_type: UnitType) -> DefectCapacity:
    return _capacity(db, _get_stock_in_item(db, stock_in_item_id), unit_type)


def _price_per_piece(item: StockInItem) -> Decimal:
    unit_size = ConversionFactors.of(item.product).unit_size(item.detected_unit_type)
    return (Decimal(item.price_per_unit) / unit_size).quantize(CENT, rounding=ROUND_HALF_UP)


def report_defect(
    db: Session,
    *,
    stock_in_item_id: int,
    unit_type: UnitType,
    quantity: int,
    defect_type: DefectType,
    defect_description: str | None = None,
    reported_by: str | None = None,
) -> Defect:
    """
    Record ``quantity`` defective ``unit_type`` units from a stock in line
    and deduct them from the line's rack.

    Raises NotFound, InvalidState (stock in not completed), InvalidConversion
    (bad quantity) or InsufficientStock (more than the line still holds).
    """
    item = _get_stock_in_item(db, stock_in_item_id)
    capacity = _capacity(db, item, unit_type)
    try:
        defect_type = DefectType(defect_type)
    except ValueError:
        raise ValidationError(f"Unknown defect type {defect_type!r}", field="defect_type") from None

    factors = ConversionFactors.of(item.product)
    pieces = to_pieces(capacity.unit_type, quantity, factors.pieces_per_pack, factors.packs_per_box)
    validate_sufficiency(pieces, capacity.available_pieces, product_id=item.product_id)

    price = _price_per_piece(item)
    defect = Defect(
        stock_in_item_id=item.id,
        product_id=item.product_id,
        rack_id=item.rack_id,
        unit_type=capacity.unit_type,
        quantity=quantity,
        defect_pieces=pieces,
        defect_type=defect_type,
        defect_description=(defect_description or "").strip() or None,
        price_per_piece=price,
        estimated_loss=(price * pieces).quantize(CENT, rounding=ROUND_HALF_UP),
        reported_by=reported_by,
    )
    db.add(defect)
    db.flush()

    ledger.commit_deduction(
        db,
        product_id=item.product_id,
        pieces=pieces,
        rack_id=item.rack_id,
        key=f"defect:{defect.id}:report",
        reason="DEFECT",
        source_type="defect",
        source_id=defect.id,
    )
    record_audit(
        db,
        entity_type="defect",
        entity_id=defect.id,
        action="report",
        actor=reported_by,
        meta={"stock_in_item_id": item.id, "pieces": pieces, "defect_type": defect_type.value},
    )
    db.flush()
    logger.info(
        "defect %s: %s pieces of product %s on rack %s (%s)",
        defect.id,
        pieces,
        item.product_id,
        item.rack_id,
        defect_type.value,
    )
    return defect


def get_defect(db: Session, defect_id: int, *, lock: bool = False) -> Defect:
    stmt = select(Defect).where(Defect.id == defect_id)
    if lock:
        stmt = stmt.with_for_update()
    defect = db.execute(stmt).scalar_one_or_none()
    if not defect:
        raise NotFound("Defect not found", defect_id=defect_id)
    return defect


def list_defects(db: Session, *, status: DefectStatus | None = None) -> list[Defect]:
    stmt = select(Defect).order_by(Defect.id.desc())
    if status is not None:
        stmt = stmt.where(Defect.status == status)
    return list(db.execute(stmt).scalars().all())


def update_defect_status(
    db: Session,
    defect_id: int,
    status: DefectStatus,
    *,
    actor: str | None = None,
) -> Defect:
    """Close a pending defect as returned or resolved. Closed defects are final."""
    try:
        status = DefectStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown defect status {status!r}", field="status") from None
    if status not in CLOSING_STATUSES:
        raise ValidationError(
            "A defect can only be marked returned or resolved",
            field="status",
            value=status.value,
        )

    defect = get_defect(db, defect_id, lock=True)
    if defect.status is not DefectStatus.pending:
        raise InvalidState(
            "Defect is already closed",
            defect_id=defect.id,
            status=defect.status.value,
        )

    if status is DefectStatus.resolved:
        ledger.commit_addition(
            db,
            product_id=defect.product_id,
            pieces=defect.defect_pieces,
            rack_id=defect.rack_id,
            key=f"defect:{defect.id}:resolved",
            reason="DEFECT_RESOLVED",
            source_type="defect",
            source_id=defect.id,
        )

    previous = defect.status
    defect.status = status
    defect.closed_at = utcnow()
    record_audit(
        db,
        entity_type="defect",
        entity_id=defect.id,
        action=status.value,
        actor=actor,
        meta={"from": previous.value, "to": status.value, "pieces": defect.defect_pieces},
    )
    db.flush()
    logger.info("defect %s: %s -> %s", defect.id, previous.value, status.value)
    return defect
