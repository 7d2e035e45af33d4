"""
Stock sufficiency check.

Advisory only: it compares numbers and never touches the ledger. The
ledger re-checks under row locks when it actually commits.
"""
from __future__ import annotations

from dataclasses import dataclass

from stockflow.app.db.models.core_types import UnitType, ValidationMode
from stockflow.services.conversion import ConversionFactors, to_pieces
from stockflow.services.errors import InsufficientStock, InvalidConversion, ValidationError


@dataclass(frozen=True)
class Accepted:
    accepted_pieces: int
    remaining_after: int


def validate_sufficiency(
    requested_pieces: int,
    available_pieces: int,
    mode: ValidationMode = ValidationMode.standard,
    *,
    product_id: int | None = None,
) -> Accepted:
    """
    Accept ``requested_pieces`` against ``available_pieces``.

    The bound is the same in both modes; the mode only records where the
    piece count came from (quantity x factors, or an exact flexible count).
    Raises InsufficientStock iff requested_pieces > available_pieces.
    """
    mode = ValidationMode(mode)
    if isinstance(requested_pieces, bool) or not isinstance(requested_pieces, int) or requested_pieces <= 0:
        raise InvalidConversion(
            "Requested pieces must be a positive integer",
            field="actual_pieces" if mode is ValidationMode.flexible else "requested_pieces",
            value=requested_pieces,
        )
    if available_pieces < 0:
        raise ValidationError("Available pieces cannot be negative", available=available_pieces)

    if requested_pieces > available_pieces:
        raise InsufficientStock(available=available_pieces, requested=requested_pieces, product_id=product_id)

    return Accepted(accepted_pieces=requested_pieces, remaining_after=available_pieces - requested_pieces)


def requested_pieces_for(
    unit: UnitType,
    quantity: int,
    factors: ConversionFactors,
    *,
    actual_pieces: int | None = None,
) -> tuple[int, ValidationMode]:
    """
    Piece count a stock-out line asks for, and the mode it was computed in.

    With ``actual_pieces`` the line is in flexible mode: the exact count
    bypasses quantity x factors. Flexible mode only makes sense for pack
    and box scans.
    """
    if actual_pieces is None:
        return to_pieces(unit, quantity, factors.pieces_per_pack, factors.packs_per_box), ValidationMode.standard

    if UnitType(unit) is UnitType.piece:
        raise ValidationError("Flexible mode applies to pack or box scans only", unit=UnitType.piece.value)
    return actual_pieces, ValidationMode.flexible
