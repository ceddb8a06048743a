from .config import settings
from .database import engine, SessionLocal, get_db, Base, build_engine
from .exceptions import (
    ErrorKind, StockLedgerError, ValidationError, NotFoundError, InsufficientStockError,
    InvariantViolationError, ContentionError
)

__all__ = [
    "settings", "engine", "SessionLocal", "get_db", "Base", "build_engine",
    "ErrorKind", "StockLedgerError", "ValidationError", "NotFoundError", "InsufficientStockError",
    "InvariantViolationError", "ContentionError",
]
