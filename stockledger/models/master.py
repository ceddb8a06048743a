"""
Master Tables: Warehouse, Product

Both are owned by the catalog; the ledger only references their ids.
"""
from sqlalchemy import Column, String, Boolean, Integer, Text
from sqlalchemy.orm import relationship
from stockledger.core import Base
from .base import UUIDMixin, TimestampMixin

class Warehouse(Base, UUIDMixin, TimestampMixin):
    """Warehouse"""
    __tablename__ = "warehouse"
    
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    address = Column(Text)
    priority = Column(Integer, default=100, nullable=False)  # Lower allocates first
    is_active = Column(Boolean, default=True)
    
    # Relationships
    stock_records = relationship("StockRecord", back_populates="warehouse")

class Product(Base, UUIDMixin, TimestampMixin):
    """Product Master"""
    __tablename__ = "product"
    
    sku = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(300), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True)
    
    # Relationships
    stock_records = relationship("StockRecord", back_populates="product")
