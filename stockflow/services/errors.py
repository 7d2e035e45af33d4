"""
Domain errors raised by the stock engine.

Every error carries a stable ``code``, the HTTP status the API maps it to,
and a ``context`` dict with the structured facts behind the message
(ids, quantities, statuses). Nothing here is retried internally.
"""
from __future__ import annotations

from typing import Any


class StockFlowError(Exception):
    code = "stockflow_error"
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, "context": self.context}


class NotFound(StockFlowError):
    code = "not_found"
    status_code = 404


class AmbiguousBarcode(StockFlowError):
    code = "ambiguous_barcode"
    status_code = 409


class DuplicateBarcode(StockFlowError):
    code = "duplicate_barcode"
    status_code = 409


class InvalidConversion(StockFlowError):
    code = "invalid_conversion"
    status_code = 422


class InsufficientStock(StockFlowError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, *, available: int, requested: int, product_id: int | None = None) -> None:
        super().__init__(
            f"Insufficient stock (available={available}, requested={requested})",
            available=available,
            requested=requested,
            product_id=product_id,
        )
        self.available = available
        self.requested = requested
        self.product_id = product_id


class InvalidState(StockFlowError):
    code = "invalid_state"
    status_code = 409


class ValidationError(StockFlowError):
    code = "validation_error"
    status_code = 422


class IdempotencyConflict(StockFlowError):
    code = "idempotency_conflict"
    status_code = 409
