"""
Stock Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from uuid import UUID
from datetime import datetime

class StockRecordCreate(BaseModel):
    product_id: UUID
    warehouse_id: UUID
    min_stock_level: int = Field(0, ge=0)

class StockRecordUpdate(BaseModel):
    min_stock_level: int = Field(..., ge=0)

class AdjustStockRequest(BaseModel):
    product_stock_id: UUID
    adjustment_type: Literal["increase", "decrease"]
    quantity: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = None
    actor: Optional[str] = None

class ReserveStockRequest(BaseModel):
    """A request to reserve stock for a business document"""
    product_id: UUID
    quantity: int
    reference_type: str
    reference_id: str
    actor: Optional[str] = None
    notes: Optional[str] = None

class ReleaseStockRequest(ReserveStockRequest):
    warehouse_id: Optional[UUID] = None  # Release from one warehouse instead of the document's reservations

class DeductStockRequest(ReserveStockRequest):
    warehouse_id: UUID
    # Document whose reservation is shipped, when it is not the delivery document itself
    reservation_reference_type: Optional[str] = None
    reservation_reference_id: Optional[str] = None

class AvailabilityItem(BaseModel):
    product_id: UUID
    quantity: int

class CheckAvailabilityRequest(BaseModel):
    items: List[AvailabilityItem]

class WarehouseAllocation(BaseModel):
    warehouse_id: UUID
    quantity_reserved: int

class WarehouseRelease(BaseModel):
    warehouse_id: UUID
    quantity_released: int

class WarehouseAvailability(BaseModel):
    warehouse_id: UUID
    warehouse_code: str
    warehouse_name: str
    quantity: int
    reserved_quantity: int
    available: int

class Availability(BaseModel):
    product_id: UUID
    total_available: int
    per_warehouse: List[WarehouseAvailability]

class DocumentReservation(BaseModel):
    warehouse_id: UUID
    quantity_reserved: int

class StockRecordResponse(BaseModel):
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    quantity: int
    reserved_quantity: int
    available_quantity: int
    min_stock_level: int

    class Config:
        from_attributes = True

class MovementResponse(BaseModel):
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    type: str
    quantity_change: int
    previous_quantity: Optional[int]
    new_quantity: Optional[int]
    reference_type: Optional[str]
    reference_id: Optional[str]
    reservation_reference_type: Optional[str] = None
    reservation_reference_id: Optional[str] = None
    notes: Optional[str]
    actor: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True

class LedgerDiscrepancy(BaseModel):
    stock_record_id: UUID
    product_id: UUID
    warehouse_id: UUID
    quantity: int
    expected_quantity: int
    reserved_quantity: int
    expected_reserved_quantity: int
