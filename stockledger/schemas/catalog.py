"""
Catalog Schemas
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID

class WarehouseCreate(BaseModel):
    code: str
    name: str
    address: Optional[str] = None
    priority: int = 100

class WarehouseResponse(BaseModel):
    id: UUID
    code: str
    name: str
    priority: int
    is_active: bool

    class Config:
        from_attributes = True

class ProductCreate(BaseModel):
    sku: str
    name: str
    description: Optional[str] = None

class ProductResponse(BaseModel):
    id: UUID
    sku: str
    name: str
    description: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True
