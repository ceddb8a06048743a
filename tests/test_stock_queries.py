from uuid import uuid4

import pytest

from stockledger.core import NotFoundError
from stockledger.models import StockRecord, MovementType
from stockledger.services import StockLedger, StockQueryService

from conftest import make_product, make_warehouse, seed_stock


def test_verify_ledger_reports_tampered_record(db):
    product = make_product(db)
    warehouse = make_warehouse(db)
    record = seed_stock(db, product, warehouse, 10, reserved=4)
    assert StockQueryService.verify_ledger(db) == []

    # A write that bypassed the ledger
    record.quantity = 12
    db.commit()

    discrepancies = StockQueryService.verify_ledger(db)
    assert len(discrepancies) == 1
    assert discrepancies[0].stock_record_id == record.id
    assert (discrepancies[0].quantity, discrepancies[0].expected_quantity) == (12, 10)
    assert discrepancies[0].expected_reserved_quantity == 4


def test_recent_movements_filters(db):
    product = make_product(db)
    w1 = make_warehouse(db, "W1")
    w2 = make_warehouse(db, "W2")
    seed_stock(db, product, w1, 10)
    seed_stock(db, product, w2, 10)
    StockLedger.reserve_stock(db, product.id, 15, "SalesOrder", "SO-7", allocation_order="warehouse_code")

    by_reference = StockQueryService.get_recent_movements(db, reference_type="SalesOrder", reference_id="SO-7")
    assert len(by_reference) == 2

    in_w2 = StockQueryService.get_recent_movements(db, warehouse_id=w2.id)
    assert {m.type for m in in_w2} == {MovementType.ADJUSTMENT_IN.value, MovementType.RESERVATION.value}

    adjustments = StockQueryService.get_recent_movements(db, movement_type=MovementType.ADJUSTMENT_IN.value, limit=1)
    assert len(adjustments) == 1


def test_movement_history_pages(db):
    product = make_product(db)
    warehouse = make_warehouse(db)
    record = seed_stock(db, product, warehouse, 10)
    for i in range(4):
        StockLedger.adjust_stock(db, product.id, warehouse.id, 1, f"count {i}", actor="auditor")

    page_one, total = StockQueryService.get_movement_history(db, record.id, page=1, per_page=3)
    page_two, _ = StockQueryService.get_movement_history(db, record.id, page=2, per_page=3)

    assert total == 5
    assert len(page_one) == 3
    assert len(page_two) == 2
    assert page_one[0].notes == "count 3"
    assert page_two[-1].notes == "opening balance"


def test_movement_history_unknown_record(db):
    with pytest.raises(NotFoundError):
        StockQueryService.get_movement_history(db, uuid4())


def test_low_stock_uses_available_quantity(db):
    product = make_product(db)
    warehouse = make_warehouse(db)
    record = seed_stock(db, product, warehouse, 10, reserved=6)
    StockLedger.update_min_stock_level(db, record.id, 5)

    low = StockQueryService.get_low_stock(db)
    assert [r.id for r in low] == [record.id]
    assert StockQueryService.get_low_stock(db, warehouse_id=uuid4()) == []


def test_document_reservations_net_of_deductions(db):
    product = make_product(db)
    warehouse = make_warehouse(db)
    seed_stock(db, product, warehouse, 10)
    StockLedger.reserve_stock(db, product.id, 6, "SalesOrder", "SO-8")
    StockLedger.deduct_stock(db, product.id, warehouse.id, 2, "SalesOrder", "SO-8")

    held = StockLedger.get_document_reservations(db, product.id, "SalesOrder", "SO-8")
    assert [(h.warehouse_id, h.quantity_reserved) for h in held] == [(warehouse.id, 4)]

    db.expire_all()
    record = db.query(StockRecord).one()
    assert (record.quantity, record.reserved_quantity) == (8, 4)
