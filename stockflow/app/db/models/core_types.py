import enum


class UnitType(str, enum.Enum):
    piece = "piece"
    pack = "pack"
    box = "box"


class LocationStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"


class MovementType(str, enum.Enum):
    receipt = "RECEIPT"
    issue = "ISSUE"
    reserve = "RESERVE"
    unreserve = "UNRESERVE"


class StockInStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    rejected = "rejected"


class StockOutStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    completed = "completed"
    rejected = "rejected"


class TransactionKind(str, enum.Enum):
    stock_in = "stock_in"
    stock_out = "stock_out"


class TransitionAction(str, enum.Enum):
    approve = "approve"
    complete = "complete"
    reject = "reject"


class ValidationMode(str, enum.Enum):
    standard = "standard"
    flexible = "flexible"


class ScanPurpose(str, enum.Enum):
    stock_in = "stock_in"
    stock_out = "stock_out"


class DefectStatus(str, enum.Enum):
    pending = "pending"
    returned = "returned"
    resolved = "resolved"


class DefectType(str, enum.Enum):
    damaged = "damaged"
    expired = "expired"
    wrong_item = "wrong_item"
    missing_parts = "missing_parts"
    other = "other"
