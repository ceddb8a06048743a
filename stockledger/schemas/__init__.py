# Pydantic Schemas Package
from .stock import (
    StockRecordCreate, StockRecordUpdate, AdjustStockRequest, ReserveStockRequest,
    ReleaseStockRequest, DeductStockRequest, AvailabilityItem, CheckAvailabilityRequest,
    WarehouseAllocation, WarehouseRelease, WarehouseAvailability, Availability,
    DocumentReservation, StockRecordResponse, MovementResponse, LedgerDiscrepancy
)
from .catalog import WarehouseCreate, WarehouseResponse, ProductCreate, ProductResponse

__all__ = [
    "StockRecordCreate", "StockRecordUpdate", "AdjustStockRequest", "ReserveStockRequest",
    "ReleaseStockRequest", "DeductStockRequest", "AvailabilityItem", "CheckAvailabilityRequest",
    "WarehouseAllocation", "WarehouseRelease", "WarehouseAvailability", "Availability",
    "DocumentReservation", "StockRecordResponse", "MovementResponse", "LedgerDiscrepancy",
    "WarehouseCreate", "WarehouseResponse", "ProductCreate", "ProductResponse",
]
