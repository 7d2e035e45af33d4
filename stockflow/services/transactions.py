"""
Stock in / stock out transaction store.

Headers are created empty (pending), filled one scanned line at a time and
then moved through the workflow. Transitions forward the finalized lines
to the ledger:

    stock in  complete -> receipt of every line into its rack
    stock out approve  -> reserve every line's pieces
    stock out complete -> issue the reserved pieces
    stock out reject   -> release the reservation (if it was approved)

Functions flush but never commit; endpoints own the transaction.
"""
from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.core.logging import get_logger
from stockflow.app.db.models.models_v1 import (
    AuditLog,
    Rack,
    StockIn,
    StockInItem,
    StockOut,
    StockOutItem,
    Supplier,
    utcnow,
)
from stockflow.app.db.models.core_types import (
    StockOutStatus,
    TransactionKind,
    TransitionAction,
)
from stockflow.services import ledger, workflow
from stockflow.services.conversion import ConversionFactors, ConversionOverride, to_pieces
from stockflow.services.errors import NotFound, ValidationError
from stockflow.services.resolver import resolve_barcode, resolve_for_stock_in
from stockflow.services.sufficiency import requested_pieces_for, validate_sufficiency

logger = get_logger("transactions")

CENT = Decimal("0.01")


def _money(value, field: str = "price_per_unit") -> Decimal:
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError("Amount must be a number", field=field, value=str(value)) from None


def _require_price(price_per_unit) -> Decimal:
    price = _money(price_per_unit)
    if price <= 0:
        raise ValidationError("Price per unit must be greater than 0", field="price_per_unit", value=str(price))
    return price


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", field="quantity", value=quantity)
    return quantity


def record_audit(db: Session, *, entity_type: str, entity_id: int, action: str, actor: str | None, meta: dict) -> None:
    db.add(
        AuditLog(
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            meta=json.dumps(meta, default=str),
        )
    )


# ---------- HEADERS ----------
def create_stock_in(
    db: Session,
    *,
    invoice_code: str,
    supplier_id: int | None = None,
    packing_list_number: str | None = None,
    receipt_date=None,
    notes: str | None = None,
) -> StockIn:
    if not invoice_code or not invoice_code.strip():
        raise ValidationError("Invoice code is required", field="invoice_code")
    exists = db.execute(select(StockIn).where(StockIn.invoice_code == invoice_code)).scalar_one_or_none()
    if exists:
        raise ValidationError("Invoice code already exists", field="invoice_code", stock_in_id=exists.id)
    if supplier_id is not None and not db.get(Supplier, supplier_id):
        raise NotFound("Supplier not found", supplier_id=supplier_id)

    header = StockIn(
        invoice_code=invoice_code.strip(),
        supplier_id=supplier_id,
        packing_list_number=packing_list_number,
        receipt_date=receipt_date,
        notes=notes,
    )
    db.add(header)
    db.flush()
    logger.info("stock in %s created (%s)", header.id, header.invoice_code)
    return header


def create_stock_out(
    db: Session,
    *,
    reference_number: str,
    department_name: str,
    requestor_name: str,
    notes: str | None = None,
) -> StockOut:
    for name, value in (
        ("reference_number", reference_number),
        ("department_name", department_name),
        ("requestor_name", requestor_name),
    ):
        if not value or not value.strip():
            raise ValidationError(f"{name} is required", field=name)
    exists = db.execute(select(StockOut).where(StockOut.reference_number == reference_number)).scalar_one_or_none()
    if exists:
        raise ValidationError("Reference number already exists", field="reference_number", stock_out_id=exists.id)

    header = StockOut(
        reference_number=reference_number.strip(),
        department_name=department_name.strip(),
        requestor_name=requestor_name.strip(),
        notes=notes,
    )
    db.add(header)
    db.flush()
    logger.info("stock out %s created (%s)", header.id, header.reference_number)
    return header


def get_stock_in(db: Session, stock_in_id: int, *, lock: bool = False) -> StockIn:
    stmt = select(StockIn).where(StockIn.id == stock_in_id)
    if lock:
        stmt = stmt.with_for_update()
    header = db.execute(stmt).scalar_one_or_none()
    if not header:
        raise NotFound("Stock in not found", stock_in_id=stock_in_id)
    return header


def get_stock_out(db: Session, stock_out_id: int, *, lock: bool = False) -> StockOut:
    stmt = select(StockOut).where(StockOut.id == stock_out_id)
    if lock:
        stmt = stmt.with_for_update()
    header = db.execute(stmt).scalar_one_or_none()
    if not header:
        raise NotFound("Stock out not found", stock_out_id=stock_out_id)
    return header


# ---------- STOCK IN ITEMS ----------
def _require_rack(db: Session, rack_id: int | None) -> Rack:
    if rack_id is None:
        raise ValidationError("Select a storage location (rack) for the item", field="rack_id")
    rack = db.get(Rack, rack_id)
    if not rack:
        raise NotFound("Rack not found", rack_id=rack_id)
    return rack


def _get_stock_in_item(header: StockIn, item_id: int) -> StockInItem:
    for item in header.items:
        if item.id == item_id:
            return item
    raise NotFound("Stock in item not found", stock_in_id=header.id, item_id=item_id)


def add_stock_in_item(
    db: Session,
    stock_in_id: int,
    *,
    barcode: str,
    quantity: int,
    price_per_unit,
    rack_id: int | None,
) -> StockInItem:
    header = get_stock_in(db, stock_in_id, lock=True)
    workflow.ensure_mutable(TransactionKind.stock_in, header.status, header_id=header.id)

    scan = resolve_for_stock_in(db, barcode)
    if scan is None:
        raise NotFound("Product not found for this barcode; register the product first", barcode=barcode.strip())

    quantity = _require_quantity(quantity)
    price = _require_price(price_per_unit)
    rack = _require_rack(db, rack_id)

    factors = scan.factors
    item = StockInItem(
        product_id=scan.product.id,
        rack_id=rack.id,
        scanned_barcode=scan.scanned_barcode,
        detected_unit_type=scan.detected_unit_type,
        quantity=quantity,
        total_pieces=to_pieces(scan.detected_unit_type, quantity, factors.pieces_per_pack, factors.packs_per_box),
        price_per_unit=price,
        total_amount=_money(quantity * price),
    )
    header.items.append(item)
    db.flush()
    logger.info("stock in %s: +%s pieces of product %s", header.id, item.total_pieces, item.product_id)
    return item


def update_stock_in_item(
    db: Session,
    stock_in_id: int,
    item_id: int,
    *,
    quantity: int | None = None,
    price_per_unit=None,
    rack_id: int | None = None,
) -> StockInItem:
    header = get_stock_in(db, stock_in_id, lock=True)
    workflow.ensure_mutable(TransactionKind.stock_in, header.status, header_id=header.id)
    item = _get_stock_in_item(header, item_id)

    if quantity is not None:
        item.quantity = _require_quantity(quantity)
    if price_per_unit is not None:
        item.price_per_unit = _require_price(price_per_unit)
    if rack_id is not None:
        item.rack_id = _require_rack(db, rack_id).id

    factors = ConversionFactors.of(item.product)
    item.total_pieces = to_pieces(item.detected_unit_type, item.quantity, factors.pieces_per_pack, factors.packs_per_box)
    item.total_amount = _money(item.quantity * item.price_per_unit)
    db.flush()
    return item


def remove_stock_in_item(db: Session, stock_in_id: int, item_id: int) -> None:
    header = get_stock_in(db, stock_in_id, lock=True)
    workflow.ensure_mutable(TransactionKind.stock_in, header.status, header_id=header.id)
    item = _get_stock_in_item(header, item_id)
    header.items.remove(item)
    db.flush()


# ---------- STOCK OUT ITEMS ----------
def _get_stock_out_item(header: StockOut, item_id: int) -> StockOutItem:
    for item in header.items:
        if item.id == item_id:
            return item
    raise NotFound("Stock out item not found", stock_out_id=header.id, item_id=item_id)


def _pending_pieces(header: StockOut, product_id: int, *, exclude_item_id: int | None = None) -> int:
    return sum(
        i.total_pieces for i in header.items if i.product_id == product_id and i.id != exclude_item_id
    )


def _price_stock_out_line(
    db: Session,
    header: StockOut,
    *,
    barcode: str,
    quantity: int,
    price_per_unit,
    actual_pieces: int | None,
    override: ConversionOverride | None,
    exclude_item_id: int | None = None,
) -> dict:
    scan = resolve_barcode(db, barcode)
    quantity = _require_quantity(quantity)
    price = _require_price(price_per_unit)
    factors = ConversionFactors.for_item(scan.product, override)

    requested, mode = requested_pieces_for(
        scan.detected_unit_type,
        quantity,
        factors,
        actual_pieces=actual_pieces,
    )
    # lines already on this request compete for the same stock
    available = scan.total_pieces_in_stock - _pending_pieces(header, scan.product.id, exclude_item_id=exclude_item_id)
    validate_sufficiency(requested, max(available, 0), mode, product_id=scan.product.id)

    return dict(
        product_id=scan.product.id,
        scanned_barcode=scan.scanned_barcode,
        detected_unit_type=scan.detected_unit_type,
        quantity=quantity,
        pieces_per_pack=factors.pieces_per_pack,
        packs_per_box=factors.packs_per_box,
        conversion_overridden=factors.overridden,
        flexible=actual_pieces is not None,
        total_pieces=requested,
        price_per_unit=price,
        total_amount=_money(quantity * price),
    )


def add_stock_out_item(
    db: Session,
    stock_out_id: int,
    *,
    barcode: str,
    quantity: int,
    price_per_unit,
    actual_pieces: int | None = None,
    override: ConversionOverride | None = None,
) -> StockOutItem:
    header = get_stock_out(db, stock_out_id, lock=True)
    workflow.ensure_mutable(TransactionKind.stock_out, header.status, header_id=header.id)

    line = _price_stock_out_line(
        db,
        header,
        barcode=barcode,
        quantity=quantity,
        price_per_unit=price_per_unit,
        actual_pieces=actual_pieces,
        override=override,
    )
    item = StockOutItem(**line)
    header.items.append(item)
    db.flush()
    logger.info("stock out %s: -%s pieces of product %s requested", header.id, item.total_pieces, item.product_id)
    return item


def update_stock_out_item(
    db: Session,
    stock_out_id: int,
    item_id: int,
    *,
    quantity: int | None = None,
    price_per_unit=None,
    actual_pieces: int | None = None,
    override: ConversionOverride | None = None,
    reset_conversion: bool = False,
) -> StockOutItem:
    """
    Re-price a line; the scanned barcode stays the same.

    Omitted inputs keep the line's stored values, including a flexible
    piece count and override factors. ``reset_conversion`` drops both and
    goes back to the catalog factors.
    """
    header = get_stock_out(db, stock_out_id, lock=True)
    workflow.ensure_mutable(TransactionKind.stock_out, header.status, header_id=header.id)
    item = _get_stock_out_item(header, item_id)

    if not reset_conversion:
        if actual_pieces is None and item.flexible:
            actual_pieces = item.total_pieces
        if override is None and item.conversion_overridden:
            override = ConversionOverride(pieces_per_pack=item.pieces_per_pack, packs_per_box=item.packs_per_box)

    line = _price_stock_out_line(
        db,
        header,
        barcode=item.scanned_barcode,
        quantity=item.quantity if quantity is None else quantity,
        price_per_unit=item.price_per_unit if price_per_unit is None else price_per_unit,
        actual_pieces=actual_pieces,
        override=override,
        exclude_item_id=item.id,
    )
    for name, value in line.items():
        setattr(item, name, value)
    db.flush()
    return item


def remove_stock_out_item(db: Session, stock_out_id: int, item_id: int) -> None:
    header = get_stock_out(db, stock_out_id, lock=True)
    workflow.ensure_mutable(TransactionKind.stock_out, header.status, header_id=header.id)
    item = _get_stock_out_item(header, item_id)
    header.items.remove(item)
    db.flush()


# ---------- TRANSITIONS ----------
def _item_key(kind: TransactionKind, header_id: int, item_id: int, action: TransitionAction) -> str:
    return f"{kind.value}:{header_id}:item:{item_id}:{action.value}"


def transition_stock_in(db: Session, stock_in_id: int, action: TransitionAction, *, actor: str | None = None) -> StockIn:
    header = get_stock_in(db, stock_in_id, lock=True)
    previous = header.status
    target = workflow.next_status(
        TransactionKind.stock_in,
        header.status,
        action,
        item_count=len(header.items),
        header_id=header.id,
    )
    action = TransitionAction(action)

    if action is TransitionAction.complete:
        # fixed lock order across concurrent transitions
        for item in sorted(header.items, key=lambda i: (i.product_id, i.rack_id, i.id)):
            ledger.commit_addition(
                db,
                product_id=item.product_id,
                pieces=item.total_pieces,
                rack_id=item.rack_id,
                key=_item_key(TransactionKind.stock_in, header.id, item.id, action),
                reason="STOCK_IN",
                source_type=TransactionKind.stock_in.value,
                source_id=header.id,
            )
        header.completed_at = utcnow()

    header.status = target
    record_audit(
        db,
        entity_type=TransactionKind.stock_in.value,
        entity_id=header.id,
        action=action.value,
        actor=actor,
        meta={"from": previous.value, "to": target.value, "items": len(header.items)},
    )
    db.flush()
    logger.info("stock in %s: %s -> %s", header.id, previous.value, target.value)
    return header


def transition_stock_out(db: Session, stock_out_id: int, action: TransitionAction, *, actor: str | None = None) -> StockOut:
    header = get_stock_out(db, stock_out_id, lock=True)
    previous = header.status
    target = workflow.next_status(
        TransactionKind.stock_out,
        header.status,
        action,
        item_count=len(header.items),
        header_id=header.id,
    )
    action = TransitionAction(action)

    if action is TransitionAction.approve:
        move = ledger.reserve
    elif action is TransitionAction.complete:
        move = ledger.issue_reserved
    elif previous is StockOutStatus.approved:
        move = ledger.release
    else:
        move = None

    if move is not None:
        # fixed lock order across concurrent transitions
        for item in sorted(header.items, key=lambda i: (i.product_id, i.id)):
            move(
                db,
                product_id=item.product_id,
                pieces=item.total_pieces,
                key=_item_key(TransactionKind.stock_out, header.id, item.id, action),
                reason="STOCK_OUT",
                source_type=TransactionKind.stock_out.value,
                source_id=header.id,
            )

    if action is TransitionAction.approve:
        header.approved_at = utcnow()
        header.approved_by = actor
    elif action is TransitionAction.complete:
        header.completed_at = utcnow()

    header.status = target
    record_audit(
        db,
        entity_type=TransactionKind.stock_out.value,
        entity_id=header.id,
        action=action.value,
        actor=actor,
        meta={
            "from": previous.value,
            "to": target.value,
            "items": [{"product_id": i.product_id, "total_pieces": i.total_pieces} for i in header.items],
        },
    )
    db.flush()
    logger.info("stock out %s: %s -> %s", header.id, previous.value, target.value)
    return header


def transition(
    db: Session,
    kind: TransactionKind,
    header_id: int,
    action: TransitionAction,
    *,
    actor: str | None = None,
):
    if TransactionKind(kind) is TransactionKind.stock_in:
        return transition_stock_in(db, header_id, action, actor=actor)
    return transition_stock_out(db, header_id, action, actor=actor)
