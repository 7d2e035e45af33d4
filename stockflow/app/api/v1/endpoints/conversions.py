from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from stockflow.app.db.models.core_types import UnitType, ValidationMode
from stockflow.services.conversion import to_pieces
from stockflow.services.sufficiency import validate_sufficiency

router = APIRouter(prefix="/conversions")


# Bounds are enforced by the services so that errors keep their domain codes
class ConversionRequest(BaseModel):
    unit_type: UnitType
    quantity: int
    pieces_per_pack: int = 1
    packs_per_box: int = 1


class ConversionRead(BaseModel):
    unit_type: UnitType
    quantity: int
    total_pieces: int


class SufficiencyRequest(BaseModel):
    requested_pieces: int
    available_pieces: int
    mode: ValidationMode = ValidationMode.standard
    product_id: int | None = None


class SufficiencyRead(BaseModel):
    accepted_pieces: int
    remaining_after: int


@router.post("", response_model=ConversionRead)
def compute_conversion(payload: ConversionRequest):
    pieces = to_pieces(payload.unit_type, payload.quantity, payload.pieces_per_pack, payload.packs_per_box)
    return ConversionRead(unit_type=payload.unit_type, quantity=payload.quantity, total_pieces=pieces)


@router.post("/sufficiency", response_model=SufficiencyRead)
def check_sufficiency(payload: SufficiencyRequest):
    accepted = validate_sufficiency(
        payload.requested_pieces,
        payload.available_pieces,
        payload.mode,
        product_id=payload.product_id,
    )
    return SufficiencyRead(accepted_pieces=accepted.accepted_pieces, remaining_after=accepted.remaining_after)
