"""
Stock Query Service - Read-only stock views for the presentation layer
"""
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import case, func, or_
from typing import List, Optional, Dict, Tuple
from uuid import UUID

from stockledger.core import NotFoundError, ValidationError
from stockledger.models import StockRecord, MovementRecord, MovementType, ON_HAND_MOVEMENTS, Product
from stockledger.schemas.stock import LedgerDiscrepancy

VIEW_MODES = ("per-warehouse", "consolidated", "all-warehouses")

class StockQueryService:
    """Stock level, movement and audit queries"""

    @staticmethod
    def get_stock_levels(
        db: Session,
        view_mode: str = "per-warehouse",
        search: Optional[str] = None,
        warehouse_id: Optional[UUID] = None,
        page: int = 1,
        per_page: int = 10
    ) -> Tuple[List[Dict], int]:
        """Get stock levels in one of three view modes"""
        if view_mode not in VIEW_MODES:
            raise ValidationError(f"view_mode must be one of {', '.join(VIEW_MODES)}")

        query = db.query(StockRecord).join(Product, Product.id == StockRecord.product_id)

        if search:
            search_term = f"%{search}%"
            query = query.filter(
                or_(
                    Product.sku.ilike(search_term),
                    Product.name.ilike(search_term),
                    Product.description.ilike(search_term)
                )
            )

        if warehouse_id:
            query = query.filter(StockRecord.warehouse_id == warehouse_id)

        if view_mode == "consolidated":
            return StockQueryService._consolidated_view(query, page, per_page)
        elif view_mode == "all-warehouses":
            return StockQueryService._all_warehouses_view(db, query, page, per_page)
        return StockQueryService._per_warehouse_view(query, page, per_page)

    @staticmethod
    def _per_warehouse_view(query, page: int, per_page: int) -> Tuple[List[Dict], int]:
        total = query.count()
        records = query.options(
            joinedload(StockRecord.product),
            joinedload(StockRecord.warehouse)
        ).order_by(Product.sku, StockRecord.warehouse_id)\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()

        return [
            {
                "id": str(r.id),
                "product_id": str(r.product_id),
                "sku": r.product.sku,
                "product_name": r.product.name,
                "warehouse_id": str(r.warehouse_id),
                "warehouse_code": r.warehouse.code,
                "warehouse_name": r.warehouse.name,
                "quantity": r.quantity,
                "reserved_quantity": r.reserved_quantity,
                "available_quantity": r.available_quantity,
                "min_stock_level": r.min_stock_level,
                "view_mode": "per-warehouse"
            }
            for r in records
        ], total

    @staticmethod
    def _consolidated_view(query, page: int, per_page: int) -> Tuple[List[Dict], int]:
        grouped = query.with_entities(
            StockRecord.product_id,
            Product.sku,
            Product.name,
            func.sum(StockRecord.quantity).label("total_quantity"),
            func.sum(StockRecord.reserved_quantity).label("total_reserved"),
            func.min(StockRecord.min_stock_level).label("min_stock_level")
        ).group_by(StockRecord.product_id, Product.sku, Product.name)

        total = grouped.count()
        rows = grouped.order_by(Product.sku)\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()

        return [
            {
                "id": f"consolidated_{row.product_id}",
                "product_id": str(row.product_id),
                "sku": row.sku,
                "product_name": row.name,
                "warehouse_code": "ALL",
                "warehouse_name": "All Warehouses",
                "quantity": int(row.total_quantity or 0),
                "reserved_quantity": int(row.total_reserved or 0),
                "available_quantity": int((row.total_quantity or 0) - (row.total_reserved or 0)),
                "min_stock_level": int(row.min_stock_level or 0),
                "view_mode": "consolidated"
            }
            for row in rows
        ], total

    @staticmethod
    def _all_warehouses_view(db: Session, query, page: int, per_page: int) -> Tuple[List[Dict], int]:
        products = query.with_entities(
            StockRecord.product_id, Product.sku, Product.name
        ).group_by(StockRecord.product_id, Product.sku, Product.name)

        total = products.count()
        rows = products.order_by(Product.sku)\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()

        # Fetch every stock row of the page's products in one query
        product_ids = [row.product_id for row in rows]
        stocks_by_product: Dict[UUID, List[StockRecord]] = {pid: [] for pid in product_ids}
        if product_ids:
            for record in db.query(StockRecord).options(joinedload(StockRecord.warehouse)).filter(
                StockRecord.product_id.in_(product_ids)
            ).all():
                stocks_by_product[record.product_id].append(record)

        results = []
        for row in rows:
            stocks = sorted(stocks_by_product[row.product_id], key=lambda r: r.warehouse.code)
            quantity = sum(s.quantity for s in stocks)
            reserved = sum(s.reserved_quantity for s in stocks)
            results.append({
                "id": f"pivot_{row.product_id}",
                "product_id": str(row.product_id),
                "sku": row.sku,
                "product_name": row.name,
                "quantity": quantity,
                "reserved_quantity": reserved,
                "available_quantity": quantity - reserved,
                "stocks": [
                    {
                        "id": str(s.id),
                        "warehouse_id": str(s.warehouse_id),
                        "warehouse_code": s.warehouse.code,
                        "quantity": s.quantity,
                        "reserved_quantity": s.reserved_quantity,
                        "available_quantity": s.available_quantity
                    }
                    for s in stocks
                ],
                "view_mode": "all-warehouses"
            })
        return results, total

    @staticmethod
    def get_stock_record(db: Session, stock_record_id: UUID) -> StockRecord:
        record = db.query(StockRecord).filter(StockRecord.id == stock_record_id).first()
        if not record:
            raise NotFoundError(f"Stock record {stock_record_id} not found")
        return record

    @staticmethod
    def get_movement_history(
        db: Session,
        stock_record_id: UUID,
        page: int = 1,
        per_page: int = 50
    ) -> Tuple[List[MovementRecord], int]:
        """Movements of one stock record, newest first"""
        record = StockQueryService.get_stock_record(db, stock_record_id)

        query = db.query(MovementRecord).filter(
            MovementRecord.product_id == record.product_id,
            MovementRecord.warehouse_id == record.warehouse_id
        )
        total = query.count()
        movements = query.order_by(MovementRecord.created_at.desc())\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()
        return movements, total

    @staticmethod
    def get_recent_movements(
        db: Session,
        warehouse_id: Optional[UUID] = None,
        movement_type: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        limit: int = 50
    ) -> List[MovementRecord]:
        """Get recent stock movements"""
        query = db.query(MovementRecord)

        if warehouse_id:
            query = query.filter(MovementRecord.warehouse_id == warehouse_id)

        if movement_type:
            query = query.filter(MovementRecord.type == movement_type)

        if reference_type:
            query = query.filter(MovementRecord.reference_type == reference_type)

        if reference_id:
            query = query.filter(MovementRecord.reference_id == str(reference_id))

        return query.order_by(MovementRecord.created_at.desc()).limit(limit).all()

    @staticmethod
    def get_low_stock(db: Session, warehouse_id: Optional[UUID] = None) -> List[StockRecord]:
        """Stock records whose available quantity is below their minimum level"""
        query = db.query(StockRecord).filter(
            StockRecord.quantity - StockRecord.reserved_quantity < StockRecord.min_stock_level
        )
        if warehouse_id:
            query = query.filter(StockRecord.warehouse_id == warehouse_id)
        return query.order_by(StockRecord.product_id, StockRecord.warehouse_id).all()

    @staticmethod
    def verify_ledger(db: Session) -> List[LedgerDiscrepancy]:
        """
        Replay the movement log and compare it with the stock records.

        Records start at zero, so on-hand must equal the sum of on-hand
        movements and reserved must equal net reservations less deductions.
        """
        on_hand_types = [t.value for t in ON_HAND_MOVEMENTS]
        replayed = db.query(
            MovementRecord.product_id,
            MovementRecord.warehouse_id,
            func.sum(
                case(
                    (MovementRecord.type.in_(on_hand_types), MovementRecord.quantity_change),
                    else_=0
                )
            ).label("quantity"),
            func.sum(
                case(
                    (MovementRecord.type.in_([MovementType.RESERVATION.value, MovementType.RELEASE.value]),
                     -MovementRecord.quantity_change),
                    (MovementRecord.type == MovementType.DEDUCTION.value, MovementRecord.quantity_change),
                    else_=0
                )
            ).label("reserved")
        ).group_by(MovementRecord.product_id, MovementRecord.warehouse_id).all()

        expected = {
            (row.product_id, row.warehouse_id): (int(row.quantity or 0), int(row.reserved or 0))
            for row in replayed
        }

        discrepancies = []
        for record in db.query(StockRecord).all():
            expected_quantity, expected_reserved = expected.get((record.product_id, record.warehouse_id), (0, 0))
            if record.quantity != expected_quantity or record.reserved_quantity != expected_reserved:
                discrepancies.append(LedgerDiscrepancy(
                    stock_record_id=record.id,
                    product_id=record.product_id,
                    warehouse_id=record.warehouse_id,
                    quantity=record.quantity,
                    expected_quantity=expected_quantity,
                    reserved_quantity=record.reserved_quantity,
                    expected_reserved_quantity=expected_reserved
                ))
        return discrepancies
