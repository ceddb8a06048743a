from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from stockledger.core import get_db
from stockledger.services import CatalogService
from stockledger.schemas.catalog import ProductCreate, ProductResponse, WarehouseCreate, WarehouseResponse

catalog_router = APIRouter(tags=["Catalog"])

@catalog_router.get("/warehouses")
def list_warehouses(db: Session = Depends(get_db)):
    return [WarehouseResponse.model_validate(w) for w in CatalogService.get_warehouses(db)]

@catalog_router.post("/warehouses", status_code=201)
def create_warehouse(data: WarehouseCreate, db: Session = Depends(get_db)):
    return WarehouseResponse.model_validate(CatalogService.create_warehouse(db, data))

@catalog_router.delete("/warehouses/{warehouse_id}")
def delete_warehouse(warehouse_id: UUID, db: Session = Depends(get_db)):
    CatalogService.delete_warehouse(db, warehouse_id)
    return {"message": "Warehouse deleted successfully"}

@catalog_router.get("/products")
def list_products(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db)
):
    products, total = CatalogService.get_products(db, search, page, per_page)
    return {
        "products": [ProductResponse.model_validate(p) for p in products],
        "total": total,
        "page": page,
        "per_page": per_page
    }

@catalog_router.post("/products", status_code=201)
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    return ProductResponse.model_validate(CatalogService.create_product(db, data))

@catalog_router.delete("/products/{product_id}")
def delete_product(product_id: UUID, db: Session = Depends(get_db)):
    CatalogService.delete_product(db, product_id)
    return {"message": "Product deleted successfully"}
