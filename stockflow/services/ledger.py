"""
Stock ledger.

Owns the per-rack piece balances (stock_levels) and the movement journal
(stock_movements). Every mutation:

- locks the product's stock_levels rows (SELECT ... FOR UPDATE, rack order)
- re-checks sufficiency against the locked rows
- writes one StockMovement per rack touched, keyed for idempotency

Functions flush but never commit; the caller owns the transaction.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from stockflow.app.core.logging import get_logger
from stockflow.app.db.models.models_v1 import Rack, StockLevel, StockMovement
from stockflow.app.db.models.core_types import MovementType
from stockflow.services.errors import InsufficientStock, InvalidState, NotFound, ValidationError

logger = get_logger("ledger")


@dataclass(frozen=True)
class LedgerBalance:
    total_pieces: int
    location_count: int


def movement_key(*parts: object) -> str:
    raw = ":".join(str(p) for p in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def get_available_pieces(db: Session, product_id: int) -> LedgerBalance:
    """
    Available pieces (on hand minus reserved) summed over every rack, and
    the number of racks physically holding the product.
    """
    total, locations = db.execute(
        select(
            func.coalesce(func.sum(StockLevel.qty_on_hand - StockLevel.qty_reserved), 0),
            func.coalesce(func.sum(case((StockLevel.qty_on_hand > 0, 1), else_=0)), 0),
        ).where(StockLevel.product_id == product_id)
    ).one()
    return LedgerBalance(total_pieces=int(total), location_count=int(locations))


def _lock_levels(db: Session, product_id: int, rack_id: int | None = None) -> list[StockLevel]:
    stmt = (
        select(StockLevel)
        .where(StockLevel.product_id == product_id)
        .order_by(StockLevel.rack_id.asc())
        .with_for_update()
    )
    if rack_id is not None:
        stmt = stmt.where(StockLevel.rack_id == rack_id)
    return list(db.execute(stmt).scalars().all())


def _get_or_create_stock_level(db: Session, product_id: int, rack_id: int) -> StockLevel:
    sl = (
        db.execute(
            select(StockLevel)
            .where(StockLevel.product_id == product_id)
            .where(StockLevel.rack_id == rack_id)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if sl:
        return sl

    sl = StockLevel(product_id=product_id, rack_id=rack_id, qty_on_hand=0, qty_reserved=0)
    db.add(sl)
    db.flush()
    return sl


def _require_pieces(pieces: int) -> None:
    if isinstance(pieces, bool) or not isinstance(pieces, int) or pieces <= 0:
        raise ValidationError("Ledger quantities must be positive piece counts", pieces=pieces)


def _record(
    db: Session,
    *,
    sl: StockLevel,
    movement_type: MovementType,
    quantity: int,
    key: str,
    reason: str | None,
    source_type: str | None,
    source_id: int | None,
) -> StockMovement:
    mv = StockMovement(
        product_id=sl.product_id,
        rack_id=sl.rack_id,
        movement_type=movement_type,
        quantity=quantity,
        reason=reason,
        source_type=source_type,
        source_id=source_id,
        idempotency_key=movement_key(key, movement_type.value, sl.rack_id),
    )
    db.add(mv)
    return mv


def commit_addition(
    db: Session,
    *,
    product_id: int,
    pieces: int,
    rack_id: int,
    key: str,
    reason: str | None = None,
    source_type: str | None = None,
    source_id: int | None = None,
) -> StockLevel:
    """Receive ``pieces`` into ``rack_id``."""
    _require_pieces(pieces)
    if not db.get(Rack, rack_id):
        raise NotFound("Rack not found", rack_id=rack_id)

    sl = _get_or_create_stock_level(db, product_id, rack_id)
    sl.qty_on_hand += pieces
    _record(
        db,
        sl=sl,
        movement_type=MovementType.receipt,
        quantity=pieces,
        key=key,
        reason=reason,
        source_type=source_type,
        source_id=source_id,
    )
    db.flush()

    logger.info("receipt product=%s rack=%s pieces=%s", product_id, rack_id, pieces)
    return sl


def commit_deduction(
    db: Session,
    *,
    product_id: int,
    pieces: int,
    key: str,
    rack_id: int | None = None,
    reason: str | None = None,
    source_type: str | None = None,
    source_id: int | None = None,
) -> LedgerBalance:
    """
    Remove ``pieces`` of unreserved stock, from one rack or spread over the
    product's racks in rack order. Raises InsufficientStock (nothing
    written) when the locked rows cannot cover the request.
    """
    _require_pieces(pieces)
    levels = _lock_levels(db, product_id, rack_id)

    available = sum(sl.qty_available for sl in levels)
    if available < pieces:
        logger.warning("deduction refused product=%s requested=%s available=%s", product_id, pieces, available)
        raise InsufficientStock(available=available, requested=pieces, product_id=product_id)

    outstanding = pieces
    for sl in levels:
        if outstanding == 0:
            break
        take = min(sl.qty_available, outstanding)
        if take <= 0:
            continue
        sl.qty_on_hand -= take
        outstanding -= take
        _record(
            db,
            sl=sl,
            movement_type=MovementType.issue,
            quantity=take,
            key=key,
            reason=reason,
            source_type=source_type,
            source_id=source_id,
        )
    db.flush()

    logger.info("issue product=%s pieces=%s", product_id, pieces)
    return get_available_pieces(db, product_id)


def reserve(
    db: Session,
    *,
    product_id: int,
    pieces: int,
    key: str,
    reason: str | None = None,
    source_type: str | None = None,
    source_id: int | None = None,
) -> LedgerBalance:
    """Hold ``pieces`` of available stock so no other withdrawal can take them."""
    _require_pieces(pieces)
    levels = _lock_levels(db, product_id)

    available = sum(sl.qty_available for sl in levels)
    if available < pieces:
        logger.warning("reservation refused product=%s requested=%s available=%s", product_id, pieces, available)
        raise InsufficientStock(available=available, requested=pieces, product_id=product_id)

    outstanding = pieces
    for sl in levels:
        if outstanding == 0:
            break
        take = min(sl.qty_available, outstanding)
        if take <= 0:
            continue
        sl.qty_reserved += take
        outstanding -= take
        _record(
            db,
            sl=sl,
            movement_type=MovementType.reserve,
            quantity=take,
            key=key,
            reason=reason,
            source_type=source_type,
            source_id=source_id,
        )
    db.flush()

    logger.info("reserve product=%s pieces=%s", product_id, pieces)
    return get_available_pieces(db, product_id)


def _consume_reserved(
    db: Session,
    *,
    product_id: int,
    pieces: int,
    key: str,
    issue: bool,
    reason: str | None,
    source_type: str | None,
    source_id: int | None,
) -> LedgerBalance:
    levels = _lock_levels(db, product_id)

    reserved = sum(sl.qty_reserved for sl in levels)
    if reserved < pieces:
        raise InvalidState(
            "Not enough reserved stock",
            product_id=product_id,
            reserved=reserved,
            requested=pieces,
        )

    movement_type = MovementType.issue if issue else MovementType.unreserve
    outstanding = pieces
    for sl in levels:
        if outstanding == 0:
            break
        take = min(sl.qty_reserved, outstanding)
        if take <= 0:
            continue
        sl.qty_reserved -= take
        if issue:
            sl.qty_on_hand -= take
        outstanding -= take
        _record(
            db,
            sl=sl,
            movement_type=movement_type,
            quantity=take,
            key=key,
            reason=reason,
            source_type=source_type,
            source_id=source_id,
        )
    db.flush()

    logger.info("%s product=%s pieces=%s", movement_type.value.lower(), product_id, pieces)
    return get_available_pieces(db, product_id)


def issue_reserved(
    db: Session,
    *,
    product_id: int,
    pieces: int,
    key: str,
    reason: str | None = None,
    source_type: str | None = None,
    source_id: int | None = None,
) -> LedgerBalance:
    """Ship previously reserved pieces: both reserved and on-hand go down."""
    _require_pieces(pieces)
    return _consume_reserved(
        db,
        product_id=product_id,
        pieces=pieces,
        key=key,
        issue=True,
        reason=reason,
        source_type=source_type,
        source_id=source_id,
    )


def release(
    db: Session,
    *,
    product_id: int,
    pieces: int,
    key: str,
    reason: str | None = None,
    source_type: str | None = None,
    source_id: int | None = None,
) -> LedgerBalance:
    """Drop a reservation; the pieces become available again."""
    _require_pieces(pieces)
    return _consume_reserved(
        db,
        product_id=product_id,
        pieces=pieces,
        key=key,
        issue=False,
        reason=reason,
        source_type=source_type,
        source_id=source_id,
    )
