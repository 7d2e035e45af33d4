import pytest
from sqlalchemy import select

from stockflow.app.db.models.models_v1 import StockLevel, StockMovement
from stockflow.app.db.models.core_types import MovementType
from stockflow.services import ledger
from stockflow.services.errors import InsufficientStock, InvalidState, NotFound, ValidationError


def _levels(db_session, product):
    return {
        sl.rack_id: (sl.qty_on_hand, sl.qty_reserved)
        for sl in db_session.execute(select(StockLevel).where(StockLevel.product_id == product.id)).scalars()
    }


def test_addition_creates_level_and_movement(db_session, make_product, make_rack):
    p, rack = make_product(), make_rack()

    sl = ledger.commit_addition(db_session, product_id=p.id, pieces=25, rack_id=rack.id, key="rcv-1", reason="TEST")
    db_session.commit()

    assert (sl.qty_on_hand, sl.qty_reserved) == (25, 0)
    mv = db_session.execute(select(StockMovement)).scalar_one()
    assert mv.movement_type is MovementType.receipt
    assert mv.quantity == 25
    assert mv.idempotency_key == ledger.movement_key("rcv-1", MovementType.receipt.value, rack.id)


def test_addition_to_unknown_rack(db_session, make_product):
    p = make_product()
    with pytest.raises(NotFound):
        ledger.commit_addition(db_session, product_id=p.id, pieces=1, rack_id=999, key="x")


@pytest.mark.parametrize("pieces", [0, -4, True])
def test_quantities_must_be_positive(db_session, make_product, make_rack, pieces):
    p, rack = make_product(), make_rack()
    with pytest.raises(ValidationError):
        ledger.commit_addition(db_session, product_id=p.id, pieces=pieces, rack_id=rack.id, key="x")


def test_available_pieces_sums_racks(db_session, make_product, make_rack, put_stock):
    p = make_product()
    empty_rack = make_rack()
    r1, r2 = make_rack(), make_rack()
    put_stock(p, r1, 40)
    put_stock(p, r2, 2)
    ledger.commit_addition(db_session, product_id=p.id, pieces=1, rack_id=empty_rack.id, key="e")
    ledger.commit_deduction(db_session, product_id=p.id, pieces=1, rack_id=empty_rack.id, key="e-out")
    db_session.commit()

    balance = ledger.get_available_pieces(db_session, p.id)
    assert balance.total_pieces == 42
    # the emptied rack still has a row but holds nothing
    assert balance.location_count == 2


def test_unknown_product_has_zero_balance(db_session):
    balance = ledger.get_available_pieces(db_session, 12345)
    assert (balance.total_pieces, balance.location_count) == (0, 0)


def test_deduction_spreads_over_racks_in_order(db_session, make_product, make_rack, put_stock):
    """
    GIVEN 30 pieces in rack 1 and 30 in rack 2
    WHEN 45 pieces are deducted
    THEN rack 1 is emptied first and rack 2 keeps 15
    """
    p = make_product()
    r1, r2 = make_rack(), make_rack()
    put_stock(p, r1, 30)
    put_stock(p, r2, 30)

    balance = ledger.commit_deduction(db_session, product_id=p.id, pieces=45, key="scan:1")
    db_session.commit()

    assert balance.total_pieces == 15
    assert _levels(db_session, p) == {r1.id: (0, 0), r2.id: (15, 0)}
    issues = db_session.execute(
        select(StockMovement).where(StockMovement.movement_type == MovementType.issue).order_by(StockMovement.id)
    ).scalars().all()
    assert [(m.rack_id, m.quantity) for m in issues] == [(r1.id, 30), (r2.id, 15)]


def test_deduction_refused_writes_nothing(db_session, make_product, make_rack, put_stock):
    p, rack = make_product(), make_rack()
    put_stock(p, rack, 10)

    with pytest.raises(InsufficientStock) as exc:
        ledger.commit_deduction(db_session, product_id=p.id, pieces=11, key="too-much")
    db_session.rollback()

    assert (exc.value.available, exc.value.requested) == (10, 11)
    assert _levels(db_session, p) == {rack.id: (10, 0)}


def test_reserved_stock_is_not_available(db_session, make_product, make_rack, put_stock):
    p, rack = make_product(), make_rack()
    put_stock(p, rack, 10)

    ledger.reserve(db_session, product_id=p.id, pieces=8, key="so:1")
    db_session.commit()
    assert ledger.get_available_pieces(db_session, p.id).total_pieces == 2

    with pytest.raises(InsufficientStock):
        ledger.commit_deduction(db_session, product_id=p.id, pieces=3, key="scan:x")
    db_session.rollback()


def test_issue_reserved_and_release(db_session, make_product, make_rack, put_stock):
    p, rack = make_product(), make_rack()
    put_stock(p, rack, 10)
    ledger.reserve(db_session, product_id=p.id, pieces=6, key="so:1")

    ledger.issue_reserved(db_session, product_id=p.id, pieces=4, key="so:1:complete")
    assert _levels(db_session, p) == {rack.id: (6, 2)}

    ledger.release(db_session, product_id=p.id, pieces=2, key="so:1:reject")
    db_session.commit()
    assert _levels(db_session, p) == {rack.id: (6, 0)}


def test_cannot_consume_more_than_reserved(db_session, make_product, make_rack, put_stock):
    p, rack = make_product(), make_rack()
    put_stock(p, rack, 10)
    ledger.reserve(db_session, product_id=p.id, pieces=2, key="so:1")
    db_session.commit()

    with pytest.raises(InvalidState):
        ledger.issue_reserved(db_session, product_id=p.id, pieces=3, key="so:1:complete")
    with pytest.raises(InvalidState):
        ledger.release(db_session, product_id=p.id, pieces=3, key="so:1:reject")
    db_session.rollback()
