"""
Catalog Service - Products and warehouses referenced by the ledger
"""
import logging
from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import List, Optional, Tuple
from uuid import UUID

from stockledger.core import ValidationError, NotFoundError
from stockledger.models import Product, Warehouse, StockRecord, MovementRecord
from stockledger.schemas.catalog import ProductCreate, WarehouseCreate

logger = logging.getLogger(__name__)

class CatalogService:
    """Product and warehouse registry"""
    
    @staticmethod
    def get_products(
        db: Session,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 50
    ) -> Tuple[List[Product], int]:
        query = db.query(Product).filter(Product.is_active == True)
        
        if search:
            search_term = f"%{search}%"
            query = query.filter(
                or_(
                    Product.sku.ilike(search_term),
                    Product.name.ilike(search_term)
                )
            )
        
        total = query.count()
        products = query.order_by(Product.sku)\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()
        return products, total
    
    @staticmethod
    def get_warehouses(db: Session) -> List[Warehouse]:
        return db.query(Warehouse).filter(Warehouse.is_active == True).order_by(Warehouse.code).all()
    
    @staticmethod
    def create_product(db: Session, product_data: ProductCreate) -> Product:
        if db.query(Product).filter(Product.sku == product_data.sku).first():
            raise ValidationError(f"SKU {product_data.sku} already exists")
        
        product = Product(
            sku=product_data.sku,
            name=product_data.name,
            description=product_data.description
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    
    @staticmethod
    def create_warehouse(db: Session, warehouse_data: WarehouseCreate) -> Warehouse:
        if db.query(Warehouse).filter(Warehouse.code == warehouse_data.code).first():
            raise ValidationError(f"Warehouse code {warehouse_data.code} already exists")
        
        warehouse = Warehouse(
            code=warehouse_data.code,
            name=warehouse_data.name,
            address=warehouse_data.address,
            priority=warehouse_data.priority
        )
        db.add(warehouse)
        db.commit()
        db.refresh(warehouse)
        return warehouse
    
    @staticmethod
    def delete_product(db: Session, product_id: UUID) -> None:
        """Delete a product and its empty stock records; refused once stock has moved"""
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        
        CatalogService._delete_with_stock(
            db, product, StockRecord.product_id == product_id, MovementRecord.product_id == product_id
        )
        logger.info(f"Deleted product {product.sku}")
    
    @staticmethod
    def delete_warehouse(db: Session, warehouse_id: UUID) -> None:
        """Delete a warehouse and its empty stock records; refused once stock has moved"""
        warehouse = db.query(Warehouse).filter(Warehouse.id == warehouse_id).first()
        if not warehouse:
            raise NotFoundError(f"Warehouse {warehouse_id} not found")
        
        CatalogService._delete_with_stock(
            db, warehouse, StockRecord.warehouse_id == warehouse_id, MovementRecord.warehouse_id == warehouse_id
        )
        logger.info(f"Deleted warehouse {warehouse.code}")
    
    @staticmethod
    def _delete_with_stock(db: Session, entity, stock_filter, movement_filter) -> None:
        try:
            if db.query(MovementRecord.id).filter(movement_filter).first():
                raise ValidationError(f"{type(entity).__name__} has stock movement history and cannot be deleted")
            
            db.query(StockRecord).filter(stock_filter).delete(synchronize_session=False)
            db.delete(entity)
            db.commit()
        except Exception:
            db.rollback()
            raise
