"""
Stock & Movement Models
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Text, Uuid,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from stockledger.core import Base
from .base import UUIDMixin, TimestampMixin


class MovementType(str, enum.Enum):
    RESERVATION = "RESERVATION"
    RELEASE = "RELEASE"
    DEDUCTION = "DEDUCTION"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"


# Movement types that change on-hand quantity
ON_HAND_MOVEMENTS = (MovementType.DEDUCTION, MovementType.ADJUSTMENT_IN, MovementType.ADJUSTMENT_OUT)


class StockRecord(Base, UUIDMixin, TimestampMixin):
    """On-hand and reserved quantity of one product in one warehouse"""
    __tablename__ = "stock_records"
    
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False, index=True)
    warehouse_id = Column(Uuid(as_uuid=True), ForeignKey("warehouse.id"), nullable=False, index=True)
    
    quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=0)  # Low stock alert threshold
    
    # Relationships
    product = relationship("Product", back_populates="stock_records")
    warehouse = relationship("Warehouse", back_populates="stock_records")
    
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_product_warehouse"),
        CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        CheckConstraint("reserved_quantity >= 0", name="ck_stock_reserved_non_negative"),
        CheckConstraint("reserved_quantity <= quantity", name="ck_stock_reserved_within_quantity"),
    )
    
    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity


class MovementRecord(Base, UUIDMixin):
    """Append-only stock movement ledger"""
    __tablename__ = "movement_records"
    
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False, index=True)
    warehouse_id = Column(Uuid(as_uuid=True), ForeignKey("warehouse.id"), nullable=False, index=True)
    
    # Movement info
    type = Column(String(20), nullable=False)  # MovementType value
    quantity_change = Column(Integer, nullable=False)  # Signed, relative to available
    previous_quantity = Column(Integer)  # On-hand before the movement
    new_quantity = Column(Integer)  # On-hand after the movement
    
    # Reference
    reference_type = Column(String(50))  # SalesOrder, DeliveryOrder, StockRecord, ...
    reference_id = Column(String(50))
    # Reservation a DEDUCTION consumes; defaults to its own reference
    reservation_reference_type = Column(String(50))
    reservation_reference_id = Column(String(50))
    
    # Metadata
    notes = Column(Text)
    actor = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    
    # Relationships
    product = relationship("Product")
    warehouse = relationship("Warehouse")
    
    __table_args__ = (
        Index("ix_movement_reference", "reference_type", "reference_id"),
        Index("ix_movement_reservation_reference", "reservation_reference_type", "reservation_reference_id"),
        Index("ix_movement_product_warehouse", "product_id", "warehouse_id"),
    )
