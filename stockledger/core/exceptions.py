"""
Ledger Errors

Every failure leaving the ledger carries one ErrorKind so callers branch on
the kind, never on the message.
"""
import enum


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVARIANT_VIOLATION = "invariant_violation"
    CONTENTION = "contention"


class StockLedgerError(Exception):
    """Base class for ledger failures"""
    kind: ErrorKind = ErrorKind.VALIDATION
    retryable: bool = False

    def __init__(self, message: str, **context):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind.value}


class ValidationError(StockLedgerError):
    """Malformed input or unknown product/warehouse/stock record"""
    kind = ErrorKind.VALIDATION


class NotFoundError(ValidationError):
    """Referenced record does not exist"""


class InsufficientStockError(StockLedgerError):
    """Requested quantity exceeds what is available or on hand"""
    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, message: str, requested: int = 0, available: int = 0, **context):
        self.requested = requested
        self.available = available
        super().__init__(message, requested=requested, available=available, **context)


class InvariantViolationError(StockLedgerError):
    """Operation would break 0 <= reserved_quantity <= quantity"""
    kind = ErrorKind.INVARIANT_VIOLATION


class ContentionError(StockLedgerError):
    """Lock wait timed out; safe to retry"""
    kind = ErrorKind.CONTENTION
    retryable = True
