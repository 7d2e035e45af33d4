"""
Lifecycle rules for stock in / stock out headers.

    stock in : pending -> completed | rejected
    stock out: pending -> approved -> completed
               pending | approved -> rejected

completed and rejected are terminal. Items can only change while the
header is pending. This module is pure: it decides, the transaction store
applies.
"""
from __future__ import annotations

from stockflow.app.db.models.core_types import (
    StockInStatus,
    StockOutStatus,
    TransactionKind,
    TransitionAction,
)
from stockflow.services.errors import InvalidState

_STATUS_ENUM = {
    TransactionKind.stock_in: StockInStatus,
    TransactionKind.stock_out: StockOutStatus,
}

# (kind, action) -> (allowed source statuses, target status, needs items)
TRANSITIONS = {
    (TransactionKind.stock_in, TransitionAction.complete): (
        {StockInStatus.pending},
        StockInStatus.completed,
        True,
    ),
    (TransactionKind.stock_in, TransitionAction.reject): (
        {StockInStatus.pending},
        StockInStatus.rejected,
        False,
    ),
    (TransactionKind.stock_out, TransitionAction.approve): (
        {StockOutStatus.pending},
        StockOutStatus.approved,
        True,
    ),
    (TransactionKind.stock_out, TransitionAction.complete): (
        {StockOutStatus.approved},
        StockOutStatus.completed,
        True,
    ),
    (TransactionKind.stock_out, TransitionAction.reject): (
        {StockOutStatus.pending, StockOutStatus.approved},
        StockOutStatus.rejected,
        False,
    ),
}

TERMINAL = {
    StockInStatus.completed,
    StockInStatus.rejected,
    StockOutStatus.completed,
    StockOutStatus.rejected,
}


def _status(kind: TransactionKind, status):
    return _STATUS_ENUM[TransactionKind(kind)](status)


def is_terminal(kind: TransactionKind, status) -> bool:
    return _status(kind, status) in TERMINAL


def is_mutable(kind: TransactionKind, status) -> bool:
    return _status(kind, status).value == "pending"


def ensure_mutable(kind: TransactionKind, status, *, header_id: int | None = None) -> None:
    status = _status(kind, status)
    if not is_mutable(kind, status):
        raise InvalidState(
            f"Items can only be changed while the {TransactionKind(kind).value} is pending",
            kind=TransactionKind(kind).value,
            header_id=header_id,
            status=status.value,
        )


def next_status(kind: TransactionKind, status, action: TransitionAction, *, item_count: int, header_id: int | None = None):
    """
    Target status for ``action`` from ``status``.

    Raises InvalidState when the action is undefined for this header kind,
    when the header is not in an allowed source status, or when the
    action needs items and there are none.
    """
    kind = TransactionKind(kind)
    status = _status(kind, status)
    try:
        action = TransitionAction(action)
    except ValueError:
        raise InvalidState(f"Unknown action {action!r}", kind=kind.value, header_id=header_id) from None

    rule = TRANSITIONS.get((kind, action))
    if rule is None:
        raise InvalidState(
            f"{action.value} is not defined for {kind.value}",
            kind=kind.value,
            header_id=header_id,
            status=status.value,
            action=action.value,
        )

    sources, target, needs_items = rule
    if status not in sources:
        raise InvalidState(
            f"Cannot {action.value} a {kind.value} that is {status.value}",
            kind=kind.value,
            header_id=header_id,
            status=status.value,
            action=action.value,
        )
    if needs_items and item_count < 1:
        raise InvalidState(
            f"Cannot {action.value} a {kind.value} with no items",
            kind=kind.value,
            header_id=header_id,
            status=status.value,
            action=action.value,
        )
    return target
