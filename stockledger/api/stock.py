"""
Stock API - Stock views, manual adjustments and the ledger operations
driven by the order workflow
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from stockledger.core import get_db, settings, InsufficientStockError
from stockledger.services import StockLedger, StockQueryService, with_contention_retry
from stockledger.schemas.stock import (
    StockRecordCreate, StockRecordUpdate, StockRecordResponse, AdjustStockRequest,
    ReserveStockRequest, ReleaseStockRequest, DeductStockRequest, CheckAvailabilityRequest,
    MovementResponse
)

stock_router = APIRouter(prefix="/stock", tags=["Stock"])

def _page_size(per_page: Optional[int]) -> int:
    return min(per_page or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

# ===================== VIEWS =====================

@stock_router.get("")
def list_stock(
    view_mode: str = Query("per-warehouse"),
    search: Optional[str] = Query(None),
    warehouse_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db)
):
    per_page = _page_size(per_page)
    items, total = StockQueryService.get_stock_levels(db, view_mode, search, warehouse_id, page, per_page)
    return {"items": items, "total": total, "page": page, "per_page": per_page}

@stock_router.get("/availability/{product_id}")
def get_availability(product_id: UUID, db: Session = Depends(get_db)):
    return StockLedger.get_availability(db, product_id)

@stock_router.post("/check-availability")
def check_availability(data: CheckAvailabilityRequest, db: Session = Depends(get_db)):
    return {"available": StockLedger.check_availability(db, data.items)}

@stock_router.get("/low-stock")
def low_stock(warehouse_id: Optional[UUID] = Query(None), db: Session = Depends(get_db)):
    records = StockQueryService.get_low_stock(db, warehouse_id)
    return [StockRecordResponse.model_validate(r) for r in records]

@stock_router.get("/movements")
def recent_movements(
    warehouse_id: Optional[UUID] = Query(None),
    movement_type: Optional[str] = Query(None),
    reference_type: Optional[str] = Query(None),
    reference_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db)
):
    movements = StockQueryService.get_recent_movements(
        db, warehouse_id, movement_type, reference_type, reference_id, limit
    )
    return [MovementResponse.model_validate(m) for m in movements]

@stock_router.get("/audit")
def audit_ledger(db: Session = Depends(get_db)):
    discrepancies = StockQueryService.verify_ledger(db)
    return {"consistent": not discrepancies, "discrepancies": discrepancies}

# ===================== LEDGER OPERATIONS =====================

@stock_router.post("/adjust")
def adjust_stock(data: AdjustStockRequest, db: Session = Depends(get_db)):
    try:
        return StockLedger.apply_adjustment(
            db,
            data.product_stock_id,
            data.adjustment_type,
            data.quantity,
            data.reason,
            notes=data.notes,
            actor=data.actor
        )
    except InsufficientStockError as e:
        raise HTTPException(status_code=400, detail=e.message)

@stock_router.post("/reserve")
def reserve_stock(data: ReserveStockRequest, db: Session = Depends(get_db)):
    allocations = with_contention_retry(
        StockLedger.reserve_stock,
        db,
        data.product_id,
        data.quantity,
        data.reference_type,
        data.reference_id,
        actor=data.actor,
        notes=data.notes
    )
    return {"allocations": allocations}

@stock_router.post("/release")
def release_stock(data: ReleaseStockRequest, db: Session = Depends(get_db)):
    releases = StockLedger.release_stock(
        db,
        data.product_id,
        data.quantity,
        data.reference_type,
        data.reference_id,
        warehouse_id=data.warehouse_id,
        actor=data.actor,
        notes=data.notes
    )
    return {"status": "ok", "releases": releases}

@stock_router.post("/deduct")
def deduct_stock(data: DeductStockRequest, db: Session = Depends(get_db)):
    record = StockLedger.deduct_stock(
        db,
        data.product_id,
        data.warehouse_id,
        data.quantity,
        data.reference_type,
        data.reference_id,
        actor=data.actor,
        notes=data.notes,
        reservation_reference_type=data.reservation_reference_type,
        reservation_reference_id=data.reservation_reference_id
    )
    return {"status": "ok", "stock": StockRecordResponse.model_validate(record)}

# ===================== STOCK RECORDS =====================

@stock_router.post("", status_code=201)
def register_stock(data: StockRecordCreate, db: Session = Depends(get_db)):
    record = StockLedger.register_stock(db, data.product_id, data.warehouse_id, data.min_stock_level)
    return StockRecordResponse.model_validate(record)

@stock_router.get("/{stock_id}")
def get_stock(stock_id: UUID, db: Session = Depends(get_db)):
    return StockRecordResponse.model_validate(StockQueryService.get_stock_record(db, stock_id))

@stock_router.put("/{stock_id}")
def update_stock(stock_id: UUID, data: StockRecordUpdate, db: Session = Depends(get_db)):
    record = StockLedger.update_min_stock_level(db, stock_id, data.min_stock_level)
    return StockRecordResponse.model_validate(record)

@stock_router.delete("/{stock_id}")
def delete_stock(stock_id: UUID, db: Session = Depends(get_db)):
    StockLedger.delete_stock_record(db, stock_id)
    return {"message": "Product stock deleted successfully"}

@stock_router.get("/{stock_id}/movements")
def movement_history(
    stock_id: UUID,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    movements, total = StockQueryService.get_movement_history(db, stock_id, page, per_page)
    return {
        "items": [MovementResponse.model_validate(m) for m in movements],
        "total": total,
        "page": page,
        "per_page": per_page
    }
