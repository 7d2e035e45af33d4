"""
Unit conversion between piece / pack / box granularities.

A pack holds ``pieces_per_pack`` pieces and a box holds ``packs_per_box``
packs. Everything is integer arithmetic: converting to pieces never
rounds, converting pieces back to a coarser unit floors.
"""
from __future__ import annotations

from dataclasses import dataclass

from stockflow.app.db.models.core_types import UnitType
from stockflow.services.errors import InvalidConversion


def _require_int(name: str, value: object, minimum: int) -> int:
    # bool is an int subclass; True must not count as a quantity of one
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConversion(f"{name} must be an integer", field=name, value=value)
    if value < minimum:
        raise InvalidConversion(f"{name} must be >= {minimum}", field=name, value=value)
    return value


@dataclass(frozen=True)
class ConversionOverride:
    """Per-line packaging factors that supersede the catalog (stock out only)."""

    pieces_per_pack: int
    packs_per_box: int


@dataclass(frozen=True)
class ConversionFactors:
    pieces_per_pack: int
    packs_per_box: int
    overridden: bool = False

    def __post_init__(self) -> None:
        _require_int("pieces_per_pack", self.pieces_per_pack, 1)
        _require_int("packs_per_box", self.packs_per_box, 1)

    @property
    def total_pieces_per_box(self) -> int:
        return self.pieces_per_pack * self.packs_per_box

    def unit_size(self, unit: UnitType) -> int:
        return to_pieces(unit, 1, self.pieces_per_pack, self.packs_per_box)

    @classmethod
    def of(cls, product) -> "ConversionFactors":
        return cls(product.pieces_per_pack, product.packs_per_box)

    @classmethod
    def for_item(cls, product, override: ConversionOverride | None = None) -> "ConversionFactors":
        if override is None:
            return cls.of(product)
        return cls(override.pieces_per_pack, override.packs_per_box, overridden=True)


def to_pieces(unit: UnitType, quantity: int, pieces_per_pack: int, packs_per_box: int) -> int:
    """
    Convert ``quantity`` units of ``unit`` into a piece count.

    piece -> quantity
    pack  -> quantity * pieces_per_pack
    box   -> quantity * pieces_per_pack * packs_per_box

    Raises InvalidConversion for a non-positive quantity or a factor < 1.
    """
    quantity = _require_int("quantity", quantity, 1)
    pieces_per_pack = _require_int("pieces_per_pack", pieces_per_pack, 1)
    packs_per_box = _require_int("packs_per_box", packs_per_box, 1)

    try:
        unit = UnitType(unit)
    except ValueError:
        raise InvalidConversion(f"Unknown unit type {unit!r}", field="unit", value=unit) from None

    if unit is UnitType.piece:
        return quantity
    if unit is UnitType.pack:
        return quantity * pieces_per_pack
    return quantity * pieces_per_pack * packs_per_box


def from_pieces(unit: UnitType, pieces: int, pieces_per_pack: int, packs_per_box: int) -> int:
    """Whole ``unit``s contained in ``pieces`` (floor division, pieces may be 0)."""
    pieces = _require_int("pieces", pieces, 0)
    return pieces // to_pieces(unit, 1, pieces_per_pack, packs_per_box)
