"""
Rapid stock out: one scan = one immediate deduction.

resolve -> convert -> validate -> ledger deduction, in the caller's
transaction. A scan key (client nonce) makes retries safe: the first
delivery claims the key in scan_events, later deliveries with the same key
get the stored result back and deduct nothing.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockflow.app.core.logging import get_logger
from stockflow.app.db.models.models_v1 import Product, ScanEvent
from stockflow.app.db.models.core_types import TransactionKind, UnitType
from stockflow.services import ledger, workflow
from stockflow.services.catalog import normalize_barcode
from stockflow.services.conversion import to_pieces
from stockflow.services.errors import IdempotencyConflict, InvalidState, ValidationError
from stockflow.services.resolver import resolve_barcode
from stockflow.services.sufficiency import validate_sufficiency
from stockflow.services.transactions import get_stock_out

logger = get_logger("scan_deduct")

MAX_SCAN_KEY_LENGTH = 64


@dataclass(frozen=True)
class ScanDeduction:
    scan_id: int
    product: Product
    unit_type: UnitType
    quantity: int
    pieces_deducted: int
    price_per_piece: Decimal
    amount_deducted: Decimal
    remaining_stock: int
    stock_out_id: int | None
    replayed: bool = False


def _require_scan_key(scan_key: str | None) -> str:
    if not scan_key or not scan_key.strip():
        raise ValidationError("Missing scan key (Idempotency-Key)", field="scan_key")
    scan_key = scan_key.strip()
    if len(scan_key) > MAX_SCAN_KEY_LENGTH:
        raise ValidationError("Scan key is too long", field="scan_key", max_length=MAX_SCAN_KEY_LENGTH)
    return scan_key


def _find_scan(db: Session, scan_key: str) -> ScanEvent | None:
    return db.execute(select(ScanEvent).where(ScanEvent.scan_key == scan_key)).scalar_one_or_none()


def _replay(event: ScanEvent, barcode: str, quantity: int) -> ScanDeduction:
    if event.barcode != barcode or event.quantity != quantity:
        raise IdempotencyConflict(
            "Scan key was already used for a different scan",
            scan_key=event.scan_key,
            barcode=event.barcode,
            quantity=event.quantity,
        )
    logger.info("scan %s replayed", event.scan_key)
    return ScanDeduction(
        scan_id=event.id,
        product=event.product,
        unit_type=event.detected_unit_type,
        quantity=event.quantity,
        pieces_deducted=event.pieces_deducted,
        price_per_piece=event.price_per_piece,
        amount_deducted=event.amount_deducted,
        remaining_stock=event.remaining_stock,
        stock_out_id=event.stock_out_id,
        replayed=True,
    )


def scan_and_deduct(
    db: Session,
    *,
    barcode: str,
    quantity: int,
    scan_key: str,
    stock_out_id: int | None = None,
) -> ScanDeduction:
    """
    Deduct ``quantity`` units of whatever ``barcode`` identifies.

    Raises NotFound (unknown barcode), InsufficientStock (nothing deducted),
    InvalidState (linked stock out already completed/rejected),
    IdempotencyConflict (scan key reused for a different scan).
    """
    scan_key = _require_scan_key(scan_key)
    barcode = normalize_barcode(barcode)

    existing = _find_scan(db, scan_key)
    if existing:
        return _replay(existing, barcode, quantity)

    if stock_out_id is not None:
        header = get_stock_out(db, stock_out_id)
        if workflow.is_terminal(TransactionKind.stock_out, header.status):
            raise InvalidState(
                "Cannot scan against a completed or rejected stock out",
                stock_out_id=header.id,
                status=header.status.value,
            )

    scan = resolve_barcode(db, barcode)
    product = scan.product
    pieces = to_pieces(scan.detected_unit_type, quantity, scan.factors.pieces_per_pack, scan.factors.packs_per_box)
    validate_sufficiency(pieces, scan.total_pieces_in_stock, product_id=product.id)

    # replays report the price stored on the event, not the current one
    price = Decimal(product.price)
    amount = (Decimal(pieces) * price).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    event = ScanEvent(
        scan_key=scan_key,
        barcode=barcode,
        quantity=quantity,
        product_id=product.id,
        detected_unit_type=scan.detected_unit_type,
        pieces_deducted=pieces,
        price_per_piece=price,
        amount_deducted=amount,
        remaining_stock=scan.total_pieces_in_stock - pieces,
        stock_out_id=stock_out_id,
    )
    db.add(event)

    # claim the key before touching stock; a concurrent twin loses here
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        existing = _find_scan(db, scan_key)
        if existing is None:
            raise
        return _replay(existing, barcode, quantity)

    balance = ledger.commit_deduction(
        db,
        product_id=product.id,
        pieces=pieces,
        key=f"scan:{scan_key}",
        reason="SCAN_OUT",
        source_type="scan",
        source_id=event.id,
    )
    event.remaining_stock = balance.total_pieces
    db.flush()

    logger.info(
        "scan %s: product=%s unit=%s qty=%s pieces=%s remaining=%s",
        scan_key,
        product.id,
        scan.detected_unit_type.value,
        quantity,
        pieces,
        balance.total_pieces,
    )
    return ScanDeduction(
        scan_id=event.id,
        product=product,
        unit_type=scan.detected_unit_type,
        quantity=quantity,
        pieces_deducted=pieces,
        price_per_piece=price,
        amount_deducted=amount,
        remaining_stock=balance.total_pieces,
        stock_out_id=stock_out_id,
    )
