# Services Package
from .stock_service import StockLedger, with_contention_retry
from .stock_query_service import StockQueryService
from .catalog_service import CatalogService
from . import allocation

__all__ = [
    "StockLedger",
    "StockQueryService",
    "CatalogService",
    "with_contention_retry",
    "allocation",
]
