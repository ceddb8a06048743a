from types import SimpleNamespace

import pytest

from stockledger.core import InsufficientStockError, ValidationError
from stockledger.services.allocation import (
    plan_allocation, order_records, AVAILABLE_DESC, WAREHOUSE_PRIORITY, WAREHOUSE_CODE
)


def record(code, quantity, reserved=0, priority=100):
    return SimpleNamespace(
        warehouse=SimpleNamespace(code=code, priority=priority),
        quantity=quantity,
        reserved_quantity=reserved,
        available_quantity=quantity - reserved
    )


def planned(plan):
    return [(r.warehouse.code, qty) for r, qty in plan]


def test_single_warehouse_covers_request():
    plan = plan_allocation([record("A", 50)], 20, WAREHOUSE_CODE)
    assert planned(plan) == [("A", 20)]


def test_spills_over_into_next_warehouse():
    records = [record("A", 100, 20), record("B", 50, 10)]
    plan = plan_allocation(records, 100, WAREHOUSE_CODE)
    assert planned(plan) == [("A", 80), ("B", 20)]


def test_available_desc_takes_largest_first():
    records = [record("A", 30), record("B", 90), record("C", 60)]
    plan = plan_allocation(records, 120, AVAILABLE_DESC)
    assert planned(plan) == [("B", 90), ("C", 30)]


def test_available_desc_ties_break_on_code():
    records = [record("B", 40), record("A", 40)]
    plan = plan_allocation(records, 10, AVAILABLE_DESC)
    assert planned(plan) == [("A", 10)]


def test_priority_order():
    records = [record("A", 10, priority=5), record("B", 10, priority=1), record("C", 10, priority=5)]
    assert [r.warehouse.code for r in order_records(records, WAREHOUSE_PRIORITY)] == ["B", "A", "C"]


def test_skips_warehouses_with_nothing_available():
    records = [record("A", 10, 10), record("B", 5)]
    plan = plan_allocation(records, 5, WAREHOUSE_CODE)
    assert planned(plan) == [("B", 5)]


def test_shortfall_raises_without_plan():
    records = [record("A", 10, 5), record("B", 3)]
    with pytest.raises(InsufficientStockError) as exc:
        plan_allocation(records, 9, WAREHOUSE_CODE)
    assert exc.value.requested == 9
    assert exc.value.available == 8


def test_no_records_is_a_shortfall():
    with pytest.raises(InsufficientStockError):
        plan_allocation([], 1, AVAILABLE_DESC)


def test_unknown_order_rejected():
    with pytest.raises(ValidationError):
        order_records([record("A", 1)], "nearest_first")
