from decimal import Decimal

import pytest
from sqlalchemy import select

from stockflow.app.db.models.models_v1 import AuditLog, StockLevel, StockMovement
from stockflow.app.db.models.core_types import (
    MovementType,
    StockInStatus,
    StockOutStatus,
    TransactionKind,
    TransitionAction,
    UnitType,
)
from stockflow.services import ledger, transactions
from stockflow.services.conversion import ConversionOverride
from stockflow.services.errors import InsufficientStock, InvalidState, NotFound, ValidationError


def _on_hand(db_session, product, rack):
    sl = db_session.get(StockLevel, (product.id, rack.id))
    return (sl.qty_on_hand, sl.qty_reserved) if sl else (0, 0)


# ---------- STOCK IN ----------
def test_stock_in_complete_receives_every_line(db_session, make_product, make_rack):
    """
    GIVEN a pending stock in with 2 boxes (10 x 5) into rack A and 3 pieces into rack B
    WHEN it is completed
    THEN rack A holds 100 pieces, rack B holds 3, one RECEIPT per line
    """
    p = make_product(pieces_per_pack=10, packs_per_box=5)
    rack_a, rack_b = make_rack(), make_rack()

    header = transactions.create_stock_in(db_session, invoice_code="INV-001")
    line = transactions.add_stock_in_item(
        db_session, header.id, barcode=p.box_barcode, quantity=2, price_per_unit="12.50", rack_id=rack_a.id
    )
    transactions.add_stock_in_item(
        db_session, header.id, barcode=p.piece_barcode, quantity=3, price_per_unit=Decimal("0.30"), rack_id=rack_b.id
    )
    db_session.commit()

    assert line.detected_unit_type is UnitType.box
    assert line.total_pieces == 100
    assert line.total_amount == Decimal("25.00")

    header = transactions.transition_stock_in(db_session, header.id, TransitionAction.complete, actor="clerk")
    db_session.commit()

    assert header.status is StockInStatus.completed
    assert header.completed_at is not None
    assert _on_hand(db_session, p, rack_a) == (100, 0)
    assert _on_hand(db_session, p, rack_b) == (3, 0)
    receipts = db_session.execute(
        select(StockMovement).where(StockMovement.movement_type == MovementType.receipt)
    ).scalars().all()
    assert len(receipts) == 2
    audit = db_session.execute(select(AuditLog)).scalar_one()
    assert (audit.entity_type, audit.action, audit.actor) == ("stock_in", "complete", "clerk")


def test_stock_in_unknown_barcode_asks_for_registration(db_session, make_rack):
    rack = make_rack()
    header = transactions.create_stock_in(db_session, invoice_code="INV-002")
    db_session.commit()

    with pytest.raises(NotFound):
        transactions.add_stock_in_item(db_session, header.id, barcode="NEW-ONE", quantity=1, price_per_unit=1, rack_id=rack.id)


def test_stock_in_line_validation(db_session, make_product, make_rack):
    p, rack = make_product(), make_rack()
    header = transactions.create_stock_in(db_session, invoice_code="INV-003")
    db_session.commit()

    with pytest.raises(ValidationError):
        transactions.add_stock_in_item(db_session, header.id, barcode=p.piece_barcode, quantity=1, price_per_unit=1, rack_id=None)
    with pytest.raises(ValidationError):
        transactions.add_stock_in_item(db_session, header.id, barcode=p.piece_barcode, quantity=1, price_per_unit=0, rack_id=rack.id)
    with pytest.raises(ValidationError):
        transactions.add_stock_in_item(db_session, header.id, barcode=p.piece_barcode, quantity=0, price_per_unit=1, rack_id=rack.id)


def test_stock_in_duplicate_invoice(db_session):
    transactions.create_stock_in(db_session, invoice_code="INV-DUP")
    db_session.commit()
    with pytest.raises(ValidationError):
        transactions.create_stock_in(db_session, invoice_code="INV-DUP")


def test_stock_in_update_and_remove_line(db_session, make_product, make_rack):
    p, rack_a, rack_b = make_product(pieces_per_pack=6), make_rack(), make_rack()
    header = transactions.create_stock_in(db_session, invoice_code="INV-004")
    item = transactions.add_stock_in_item(
        db_session, header.id, barcode=p.pack_barcode, quantity=1, price_per_unit=3, rack_id=rack_a.id
    )
    db_session.commit()

    item = transactions.update_stock_in_item(db_session, header.id, item.id, quantity=4, rack_id=rack_b.id)
    db_session.commit()
    assert (item.quantity, item.total_pieces, item.rack_id) == (4, 24, rack_b.id)
    assert item.total_amount == Decimal("12.00")

    transactions.remove_stock_in_item(db_session, header.id, item.id)
    db_session.commit()
    assert transactions.get_stock_in(db_session, header.id).items == []


def test_stock_in_empty_cannot_complete_but_can_reject(db_session):
    header = transactions.create_stock_in(db_session, invoice_code="INV-005")
    db_session.commit()

    with pytest.raises(InvalidState):
        transactions.transition_stock_in(db_session, header.id, TransitionAction.complete)
    db_session.rollback()

    header = transactions.transition_stock_in(db_session, header.id, TransitionAction.reject)
    db_session.commit()
    assert header.status is StockInStatus.rejected


def test_completed_stock_in_is_frozen(db_session, make_product, make_rack):
    p, rack = make_product(), make_rack()
    header = transactions.create_stock_in(db_session, invoice_code="INV-006")
    item = transactions.add_stock_in_item(db_session, header.id, barcode=p.piece_barcode, quantity=5, price_per_unit=1, rack_id=rack.id)
    transactions.transition_stock_in(db_session, header.id, TransitionAction.complete)
    db_session.commit()

    with pytest.raises(InvalidState):
        transactions.add_stock_in_item(db_session, header.id, barcode=p.piece_barcode, quantity=1, price_per_unit=1, rack_id=rack.id)
    with pytest.raises(InvalidState):
        transactions.remove_stock_in_item(db_session, header.id, item.id)
    with pytest.raises(InvalidState):
        transactions.transition_stock_in(db_session, header.id, TransitionAction.complete)
    db_session.rollback()

    assert _on_hand(db_session, p, rack) == (5, 0)


# ---------- STOCK OUT ----------
@pytest.fixture
def stocked(make_product, make_rack, put_stock):
    p = make_product(pieces_per_pack=10, packs_per_box=4, price=Decimal("0.50"))
    rack = make_rack()
    put_stock(p, rack, 100)
    return p, rack


def _new_stock_out(db_session, ref="SO-001"):
    header = transactions.create_stock_out(db_session, reference_number=ref, department_name="Maintenance", requestor_name="Ana")
    db_session.commit()
    return header


def test_stock_out_lifecycle_reserves_then_issues(db_session, stocked):
    """
    GIVEN 100 pieces on hand
    WHEN a stock out for 1 box (40 pieces) is approved then completed
    THEN approve reserves 40 (60 available), complete issues them (60 on hand)
    """
    p, rack = stocked
    header = _new_stock_out(db_session)
    item = transactions.add_stock_out_item(db_session, header.id, barcode=p.box_barcode, quantity=1, price_per_unit="20")
    db_session.commit()
    assert (item.total_pieces, item.pieces_per_pack, item.packs_per_box) == (40, 10, 4)

    header = transactions.transition_stock_out(db_session, header.id, TransitionAction.approve, actor="boss")
    db_session.commit()
    assert header.status is StockOutStatus.approved
    assert header.approved_by == "boss"
    assert _on_hand(db_session, p, rack) == (100, 40)
    assert ledger.get_available_pieces(db_session, p.id).total_pieces == 60

    header = transactions.transition_stock_out(db_session, header.id, TransitionAction.complete)
    db_session.commit()
    assert header.status is StockOutStatus.completed
    assert _on_hand(db_session, p, rack) == (60, 0)


def test_stock_out_reject_after_approve_releases(db_session, stocked):
    p, rack = stocked
    header = _new_stock_out(db_session)
    transactions.add_stock_out_item(db_session, header.id, barcode=p.pack_barcode, quantity=3, price_per_unit=5)
    transactions.transition_stock_out(db_session, header.id, TransitionAction.approve)
    db_session.commit()
    assert _on_hand(db_session, p, rack) == (100, 30)

    header = transactions.transition_stock_out(db_session, header.id, TransitionAction.reject)
    db_session.commit()
    assert header.status is StockOutStatus.rejected
    assert _on_hand(db_session, p, rack) == (100, 0)


def test_stock_out_reject_from_pending_touches_nothing(db_session, stocked):
    p, rack = stocked
    header = _new_stock_out(db_session)
    transactions.add_stock_out_item(db_session, header.id, barcode=p.piece_barcode, quantity=1, price_per_unit=1)
    transactions.transition_stock_out(db_session, header.id, TransitionAction.reject)
    db_session.commit()

    assert _on_hand(db_session, p, rack) == (100, 0)
    assert db_session.execute(select(StockMovement).where(StockMovement.source_type == "stock_out")).first() is None


def test_stock_out_cannot_complete_from_pending_or_approve_empty(db_session, stocked):
    p, _ = stocked
    header = _new_stock_out(db_session)

    with pytest.raises(InvalidState):
        transactions.transition_stock_out(db_session, header.id, TransitionAction.approve)
    db_session.rollback()

    transactions.add_stock_out_item(db_session, header.id, barcode=p.piece_barcode, quantity=1, price_per_unit=1)
    db_session.commit()
    with pytest.raises(InvalidState):
        transactions.transition_stock_out(db_session, header.id, TransitionAction.complete)
    db_session.rollback()


def test_stock_out_lines_compete_for_the_same_stock(db_session, stocked):
    """
    GIVEN 100 pieces available
    WHEN a request already asks for 2 boxes (80 pieces)
    THEN a third pack line of 3 (30 pieces) is refused, 2 packs (20) pass
    """
    p, _ = stocked
    header = _new_stock_out(db_session)
    transactions.add_stock_out_item(db_session, header.id, barcode=p.box_barcode, quantity=2, price_per_unit=1)
    db_session.commit()

    with pytest.raises(InsufficientStock) as exc:
        transactions.add_stock_out_item(db_session, header.id, barcode=p.pack_barcode, quantity=3, price_per_unit=1)
    db_session.rollback()
    assert exc.value.available == 20

    item = transactions.add_stock_out_item(db_session, header.id, barcode=p.pack_barcode, quantity=2, price_per_unit=1)
    db_session.commit()
    assert item.total_pieces == 20


def test_stock_out_flexible_and_override(db_session, make_product, make_rack, put_stock):
    """
    GIVEN only 37 pieces left of a 40-piece box
    THEN a standard box line fails, a flexible count of 37 passes
    AND an override of 8 pieces/pack changes the line's conversion only
    """
    p = make_product(pieces_per_pack=10, packs_per_box=4)
    put_stock(p, make_rack(), 37)
    header = _new_stock_out(db_session)

    with pytest.raises(InsufficientStock):
        transactions.add_stock_out_item(db_session, header.id, barcode=p.box_barcode, quantity=1, price_per_unit=1)
    db_session.rollback()

    item = transactions.add_stock_out_item(
        db_session, header.id, barcode=p.box_barcode, quantity=1, price_per_unit=1, actual_pieces=37
    )
    db_session.commit()
    assert (item.total_pieces, item.flexible) == (37, True)

    transactions.remove_stock_out_item(db_session, header.id, item.id)
    item = transactions.add_stock_out_item(
        db_session,
        header.id,
        barcode=p.pack_barcode,
        quantity=2,
        price_per_unit=1,
        override=ConversionOverride(pieces_per_pack=8, packs_per_box=4),
    )
    db_session.commit()
    assert (item.total_pieces, item.conversion_overridden) == (16, True)
    assert (p.pieces_per_pack, p.packs_per_box) == (10, 4)


def test_stock_out_update_line_reprices(db_session, stocked):
    p, _ = stocked
    header = _new_stock_out(db_session)
    item = transactions.add_stock_out_item(db_session, header.id, barcode=p.pack_barcode, quantity=9, price_per_unit=1)
    db_session.commit()

    # the line's own 90 pieces do not count against its new size
    item = transactions.update_stock_out_item(db_session, header.id, item.id, quantity=10, price_per_unit="2.5")
    db_session.commit()
    assert (item.total_pieces, item.total_amount) == (100, Decimal("25.00"))


def test_approved_stock_out_lines_are_frozen(db_session, stocked):
    p, _ = stocked
    header = _new_stock_out(db_session)
    item = transactions.add_stock_out_item(db_session, header.id, barcode=p.piece_barcode, quantity=1, price_per_unit=1)
    transactions.transition_stock_out(db_session, header.id, TransitionAction.approve)
    db_session.commit()

    with pytest.raises(InvalidState):
        transactions.update_stock_out_item(db_session, header.id, item.id, quantity=2, price_per_unit=1)
    with pytest.raises(InvalidState):
        transactions.remove_stock_out_item(db_session, header.id, item.id)
    db_session.rollback()


def test_approve_fails_when_stock_moved_meanwhile(db_session, stocked):
    """The ledger re-checks at approve time; the line check is advisory."""
    p, _ = stocked
    header = _new_stock_out(db_session)
    transactions.add_stock_out_item(db_session, header.id, barcode=p.box_barcode, quantity=2, price_per_unit=1)
    db_session.commit()

    ledger.commit_deduction(db_session, product_id=p.id, pieces=50, key="scan:elsewhere")
    db_session.commit()

    with pytest.raises(InsufficientStock):
        transactions.transition_stock_out(db_session, header.id, TransitionAction.approve)
    db_session.rollback()
    assert transactions.get_stock_out(db_session, header.id).status is StockOutStatus.pending


def test_generic_transition_dispatches_by_kind(db_session):
    header = transactions.create_stock_in(db_session, invoice_code="INV-GEN")
    db_session.commit()
    header = transactions.transition(db_session, TransactionKind.stock_in, header.id, TransitionAction.reject)
    assert header.status is StockInStatus.rejected


def test_missing_header_is_not_found(db_session):
    with pytest.raises(NotFound):
        transactions.get_stock_out(db_session, 404)
    with pytest.raises(NotFound):
        transactions.transition(db_session, "stock_in", 404, "complete")


def test_transitions_touch_products_in_id_order(db_session, make_product, make_rack, put_stock):
    """
    GIVEN lines entered for product B before product A (A has the lower id)
    WHEN the stock in completes and a stock out is approved
    THEN the ledger is hit in product id order both times
    """
    a, b = make_product(), make_product()
    rack = make_rack()

    stock_in = transactions.create_stock_in(db_session, invoice_code="INV-ORDER")
    for p in (b, a):
        transactions.add_stock_in_item(db_session, stock_in.id, barcode=p.piece_barcode, quantity=5, price_per_unit=1, rack_id=rack.id)
    transactions.transition_stock_in(db_session, stock_in.id, TransitionAction.complete)
    db_session.commit()

    stock_out = _new_stock_out(db_session, ref="SO-ORDER")
    for p in (b, a):
        transactions.add_stock_out_item(db_session, stock_out.id, barcode=p.piece_barcode, quantity=2, price_per_unit=1)
    transactions.transition_stock_out(db_session, stock_out.id, TransitionAction.approve)
    db_session.commit()

    def _products(movement_type):
        return db_session.execute(
            select(StockMovement.product_id)
            .where(StockMovement.movement_type == movement_type)
            .order_by(StockMovement.id)
        ).scalars().all()

    assert a.id < b.id
    assert _products(MovementType.receipt) == [a.id, b.id]
    assert _products(MovementType.reserve) == [a.id, b.id]


def test_flexible_count_above_stock_is_refused(db_session, make_product, make_rack, put_stock):
    """
    GIVEN 37 pieces left of a 40-piece box
    WHEN a flexible line counts 40 pieces
    THEN it is refused with available=37, requested=40
    """
    p = make_product(pieces_per_pack=10, packs_per_box=4)
    put_stock(p, make_rack(), 37)
    header = _new_stock_out(db_session)

    with pytest.raises(InsufficientStock) as exc:
        transactions.add_stock_out_item(
            db_session, header.id, barcode=p.box_barcode, quantity=1, price_per_unit=1, actual_pieces=40
        )
    db_session.rollback()

    assert (exc.value.available, exc.value.requested) == (37, 40)
    assert transactions.get_stock_out(db_session, header.id).items == []


def test_non_numeric_price_is_a_validation_error(db_session, stocked, make_rack):
    p, rack = stocked
    header = _new_stock_out(db_session)

    with pytest.raises(ValidationError) as exc:
        transactions.add_stock_out_item(db_session, header.id, barcode=p.piece_barcode, quantity=1, price_per_unit="abc")
    assert exc.value.context["field"] == "price_per_unit"

    stock_in = transactions.create_stock_in(db_session, invoice_code="INV-NAN")
    db_session.commit()
    with pytest.raises(ValidationError) as exc:
        transactions.add_stock_in_item(
            db_session, stock_in.id, barcode=p.piece_barcode, quantity=1, price_per_unit="1,50", rack_id=rack.id
        )
    assert exc.value.context["field"] == "price_per_unit"
    db_session.rollback()


def test_price_only_update_keeps_flexible_count(db_session, stocked):
    """
    GIVEN a flexible box line that counted 7 pieces
    WHEN only its price is changed
    THEN it still asks for 7 pieces, not a full box of 40
    """
    p, _ = stocked
    header = _new_stock_out(db_session)
    item = transactions.add_stock_out_item(
        db_session, header.id, barcode=p.box_barcode, quantity=1, price_per_unit=1, actual_pieces=7
    )
    db_session.commit()

    item = transactions.update_stock_out_item(db_session, header.id, item.id, price_per_unit="3")
    db_session.commit()

    assert (item.total_pieces, item.flexible, item.quantity) == (7, True, 1)
    assert item.total_amount == Decimal("3.00")


def test_update_keeps_override_until_reset(db_session, stocked):
    """
    GIVEN a pack line priced with an override of 8 pieces per pack
    WHEN its quantity changes
    THEN the override still applies; reset_conversion goes back to 10 per pack
    """
    p, _ = stocked
    header = _new_stock_out(db_session)
    item = transactions.add_stock_out_item(
        db_session,
        header.id,
        barcode=p.pack_barcode,
        quantity=2,
        price_per_unit=1,
        override=ConversionOverride(pieces_per_pack=8, packs_per_box=4),
    )
    db_session.commit()

    item = transactions.update_stock_out_item(db_session, header.id, item.id, quantity=3)
    db_session.commit()
    assert (item.total_pieces, item.pieces_per_pack, item.conversion_overridden) == (24, 8, True)

    item = transactions.update_stock_out_item(db_session, header.id, item.id, reset_conversion=True)
    db_session.commit()
    assert (item.total_pieces, item.pieces_per_pack, item.conversion_overridden) == (30, 10, False)
