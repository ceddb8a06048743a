"""
Allocation Planner - Greedy multi-warehouse allocation

Pure functions over already-locked stock records. Nothing here touches the
session; the ledger applies the returned plan.
"""
from typing import Callable, Dict, List, Sequence, Tuple

from stockledger.core import InsufficientStockError, ValidationError

AVAILABLE_DESC = "available_desc"
WAREHOUSE_PRIORITY = "warehouse_priority"
WAREHOUSE_CODE = "warehouse_code"

# Sort keys per allocation order. Warehouse code is the final tie-break so
# the plan never depends on row order returned by the database.
ALLOCATION_ORDERS: Dict[str, Callable] = {
    AVAILABLE_DESC: lambda r: (-r.available_quantity, r.warehouse.code),
    WAREHOUSE_PRIORITY: lambda r: (r.warehouse.priority, r.warehouse.code),
    WAREHOUSE_CODE: lambda r: (r.warehouse.code,),
}


def order_records(records: Sequence, allocation_order: str) -> List:
    """Return records in the order warehouses should be drawn from"""
    try:
        key = ALLOCATION_ORDERS[allocation_order]
    except KeyError:
        raise ValidationError(
            f"Unknown allocation order '{allocation_order}', expected one of {sorted(ALLOCATION_ORDERS)}"
        )
    return sorted(records, key=key)


def plan_allocation(records: Sequence, quantity: int, allocation_order: str) -> List[Tuple[object, int]]:
    """
    Plan a reservation of `quantity` units across warehouses.

    Walks the records in allocation order taking min(available, remaining)
    from each. Raises InsufficientStockError when the total available is
    short, before anything is planned, so callers never apply a partial plan.
    """
    total_available = sum(max(r.available_quantity, 0) for r in records)
    if total_available < quantity:
        raise InsufficientStockError(
            f"Insufficient stock. Total Available: {total_available}, Required: {quantity}",
            requested=quantity,
            available=total_available
        )

    plan = []
    remaining = quantity
    for record in order_records(records, allocation_order):
        if remaining <= 0:
            break
        take = min(record.available_quantity, remaining)
        if take > 0:
            plan.append((record, take))
            remaining -= take

    return plan
