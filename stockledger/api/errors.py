"""
Ledger error to HTTP response mapping
"""
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stockledger.core import (
    StockLedgerError, ValidationError, NotFoundError, InsufficientStockError,
    InvariantViolationError, ContentionError
)

logger = logging.getLogger(__name__)

# Most specific class first
STATUS_CODES = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (InsufficientStockError, 409),
    (InvariantViolationError, 409),
    (ContentionError, 503),
]

def status_code_for(exc: StockLedgerError) -> int:
    for error_class, status_code in STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 500

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StockLedgerError)
    async def stock_ledger_error_handler(request: Request, exc: StockLedgerError):
        status_code = status_code_for(exc)
        logger.info(f"{request.method} {request.url.path} -> {status_code} ({exc.kind.value}): {exc.message}")
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)
