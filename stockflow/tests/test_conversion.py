import pytest

from stockflow.app.db.models.core_types import UnitType
from stockflow.services.conversion import ConversionFactors, ConversionOverride, from_pieces, to_pieces
from stockflow.services.errors import InvalidConversion


@pytest.mark.parametrize(
    "unit, quantity, expected",
    [
        (UnitType.piece, 7, 7),
        (UnitType.pack, 3, 30),
        (UnitType.box, 2, 100),
    ],
)
def test_to_pieces_with_10_per_pack_5_per_box(unit, quantity, expected):
    assert to_pieces(unit, quantity, 10, 5) == expected


def test_box_equals_packs_equals_pieces():
    """
    GIVEN factors 12 pieces/pack, 4 packs/box
    THEN 1 box == 4 packs == 48 pieces
    """
    assert to_pieces(UnitType.box, 1, 12, 4) == to_pieces(UnitType.pack, 4, 12, 4) == to_pieces(UnitType.piece, 48, 12, 4)


def test_to_pieces_accepts_unit_as_string():
    assert to_pieces("pack", 2, 6, 1) == 12


@pytest.mark.parametrize("quantity", [0, -1, True, 1.5, "3"])
def test_to_pieces_rejects_bad_quantity(quantity):
    with pytest.raises(InvalidConversion):
        to_pieces(UnitType.piece, quantity, 1, 1)


@pytest.mark.parametrize("pieces_per_pack, packs_per_box", [(0, 1), (1, 0), (-5, 2)])
def test_to_pieces_rejects_bad_factors(pieces_per_pack, packs_per_box):
    with pytest.raises(InvalidConversion):
        to_pieces(UnitType.box, 1, pieces_per_pack, packs_per_box)


def test_to_pieces_rejects_unknown_unit():
    with pytest.raises(InvalidConversion) as exc:
        to_pieces("pallet", 1, 1, 1)
    assert exc.value.context["field"] == "unit"


def test_from_pieces_floors():
    assert from_pieces(UnitType.box, 149, 10, 5) == 2
    assert from_pieces(UnitType.pack, 9, 10, 5) == 0
    assert from_pieces(UnitType.piece, 0, 10, 5) == 0


def test_factors_validate_and_multiply():
    factors = ConversionFactors(6, 4)
    assert factors.total_pieces_per_box == 24
    assert factors.unit_size(UnitType.pack) == 6
    assert factors.overridden is False

    with pytest.raises(InvalidConversion):
        ConversionFactors(0, 4)


def test_factors_for_item_prefers_override():
    class _Product:
        pieces_per_pack = 10
        packs_per_box = 5

    assert ConversionFactors.for_item(_Product()) == ConversionFactors(10, 5)

    factors = ConversionFactors.for_item(_Product(), ConversionOverride(pieces_per_pack=8, packs_per_box=5))
    assert factors.pieces_per_pack == 8
    assert factors.overridden is True
