"""
Stock Ledger - Reservation, release, deduction and adjustment of stock

Every mutating operation runs as one transaction on the given session: the
stock rows are loaded with a write lock, the new values are checked against
0 <= reserved_quantity <= quantity, and the stock rows and their movement
records are committed together. Any failure rolls the session back.
"""
import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from stockledger.core import (
    settings, StockLedgerError, ValidationError, NotFoundError,
    InsufficientStockError, InvariantViolationError, ContentionError
)
from stockledger.models import StockRecord, MovementRecord, MovementType, Product, Warehouse
from stockledger.schemas.stock import (
    WarehouseAllocation, WarehouseRelease, WarehouseAvailability, Availability, DocumentReservation
)
from .allocation import ALLOCATION_ORDERS, plan_allocation

logger = logging.getLogger(__name__)

# PostgreSQL: lock_not_available, deadlock_detected, serialization_failure
LOCK_ERROR_CODES = {"55P03", "40P01", "40001"}


def is_lock_error(exc: DBAPIError) -> bool:
    """True when a driver error means we gave up waiting for a lock"""
    code = getattr(exc.orig, "pgcode", None)
    if code in LOCK_ERROR_CODES:
        return True
    return "database is locked" in str(exc.orig).lower()


@contextmanager
def ledger_transaction(db: Session, operation: str):
    """Commit on success; roll back and translate errors on failure"""
    try:
        yield
        db.commit()
    except StockLedgerError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.error(f"[{operation}] Database constraint rejected stock change: {e.orig}")
        raise InvariantViolationError(f"Stock constraint violated during {operation}") from e
    except DBAPIError as e:
        db.rollback()
        if is_lock_error(e):
            logger.warning(f"[{operation}] Lock wait timed out: {e.orig}")
            raise ContentionError(f"Stock is busy, retry {operation}") from e
        raise
    except Exception:
        db.rollback()
        raise


def with_contention_retry(operation, *args, attempts: int = 3, base_delay: float = 0.05, **kwargs):
    """Run a ledger operation, retrying with backoff while it hits ContentionError"""
    for attempt in range(1, attempts + 1):
        try:
            return operation(*args, **kwargs)
        except ContentionError:
            if attempt == attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"Retry {attempt}/{attempts - 1} of {operation.__name__} in {delay:.2f}s")
            time.sleep(delay)


def _require_positive(quantity, field: str = "quantity") -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"{field} must be a positive integer, got {quantity!r}")


def _require_product(db: Session, product_id: UUID) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise ValidationError(f"Unknown product {product_id}")
    return product


def _lock_records(db: Session, product_id: UUID, warehouse_id: Optional[UUID] = None) -> List[StockRecord]:
    """Load a product's stock rows with a write lock, in warehouse id order"""
    query = db.query(StockRecord).filter(StockRecord.product_id == product_id)
    if warehouse_id:
        query = query.filter(StockRecord.warehouse_id == warehouse_id)
    return query.order_by(StockRecord.warehouse_id).with_for_update().all()


def _lock_record(db: Session, product_id: UUID, warehouse_id: UUID) -> StockRecord:
    records = _lock_records(db, product_id, warehouse_id)
    if not records:
        raise ValidationError(f"No stock record for product {product_id} in warehouse {warehouse_id}")
    return records[0]


def _check_invariant(record: StockRecord, operation: str) -> None:
    if not (0 <= record.reserved_quantity <= record.quantity):
        logger.error(
            f"[{operation}] Invariant broken for product {record.product_id} in warehouse "
            f"{record.warehouse_id}: quantity={record.quantity}, reserved={record.reserved_quantity}"
        )
        raise InvariantViolationError(
            f"Reserved quantity {record.reserved_quantity} outside 0..{record.quantity}"
        )


def _record_movement(
    db: Session,
    record: StockRecord,
    movement_type: MovementType,
    quantity_change: int,
    previous_quantity: int,
    reference_type: Optional[str],
    reference_id: Optional[str],
    notes: Optional[str] = None,
    actor: Optional[str] = None,
    reservation_reference_type: Optional[str] = None,
    reservation_reference_id: Optional[str] = None
) -> MovementRecord:
    movement = MovementRecord(
        product_id=record.product_id,
        warehouse_id=record.warehouse_id,
        type=movement_type.value,
        quantity_change=quantity_change,
        previous_quantity=previous_quantity,
        new_quantity=record.quantity,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        reservation_reference_type=reservation_reference_type,
        reservation_reference_id=str(reservation_reference_id) if reservation_reference_id is not None else None,
        notes=notes,
        actor=actor
    )
    db.add(movement)
    return movement


class StockLedger:
    """Stock reservation and deduction ledger"""

    # ===================== RESERVE / RELEASE =====================

    @staticmethod
    def reserve_stock(
        db: Session,
        product_id: UUID,
        quantity: int,
        reference_type: str,
        reference_id: str,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
        allocation_order: Optional[str] = None
    ) -> List[WarehouseAllocation]:
        """
        Reserve stock for a document across warehouses.

        The full plan is computed from locked rows before anything changes;
        a shortfall raises InsufficientStockError with nothing written.
        Returns the quantity reserved per warehouse, which the caller keeps
        against its own line items.
        """
        _require_positive(quantity)
        order = allocation_order or settings.ALLOCATION_ORDER
        if order not in ALLOCATION_ORDERS:
            raise ValidationError(f"Unknown allocation order '{order}'")
        allocations = []

        try:
            with ledger_transaction(db, "reserve"):
                _require_product(db, product_id)
                records = _lock_records(db, product_id)
                plan = plan_allocation(records, quantity, order)

                for record, take in plan:
                    record.reserved_quantity += take
                    _check_invariant(record, "reserve")
                    _record_movement(
                        db, record, MovementType.RESERVATION, -take, record.quantity,
                        reference_type, reference_id,
                        notes=notes or f"Stock reserved for {reference_type} #{reference_id} (Warehouse: {record.warehouse.name})",
                        actor=actor
                    )
                    allocations.append(WarehouseAllocation(warehouse_id=record.warehouse_id, quantity_reserved=take))
        except InsufficientStockError as e:
            logger.warning(
                f"Reservation refused for product {product_id} ({reference_type} #{reference_id}): "
                f"requested {e.requested}, available {e.available}"
            )
            raise

        logger.info(
            f"Reserved {quantity} of product {product_id} for {reference_type} #{reference_id} "
            f"across {len(allocations)} warehouse(s)"
        )
        return allocations

    @staticmethod
    def release_stock(
        db: Session,
        product_id: UUID,
        quantity: int,
        reference_type: str,
        reference_id: str,
        warehouse_id: Optional[UUID] = None,
        actor: Optional[str] = None,
        notes: Optional[str] = None
    ) -> List[WarehouseRelease]:
        """
        Release a document's reservation.

        Without warehouse_id the release is spread over the warehouses the
        document still holds reservations in, most recent first. With
        warehouse_id only the document's holding in that warehouse is
        released. Releasing more than the document holds raises
        InvariantViolationError.
        """
        _require_positive(quantity)
        releases = []

        with ledger_transaction(db, "release"):
            _require_product(db, product_id)

            if warehouse_id:
                record = _lock_record(db, product_id, warehouse_id)
                records = {record.warehouse_id: record}
            else:
                records = {r.warehouse_id: r for r in _lock_records(db, product_id)}

            targets = []
            for held in StockLedger.get_document_reservations(db, product_id, reference_type, reference_id):
                record = records.get(held.warehouse_id)
                if record is not None:
                    targets.append((record, min(held.quantity_reserved, record.reserved_quantity)))

            remaining = quantity
            plan = []
            for record, releasable in targets:
                take = min(remaining, releasable)
                if take > 0:
                    plan.append((record, take))
                    remaining -= take

            if remaining > 0:
                logger.error(
                    f"Release of {quantity} for product {product_id} ({reference_type} #{reference_id}) "
                    f"exceeds reserved stock by {remaining}"
                )
                raise InvariantViolationError(
                    f"Cannot release {quantity}: only {quantity - remaining} reserved for "
                    f"{reference_type} #{reference_id}"
                )

            for record, take in plan:
                record.reserved_quantity -= take
                _check_invariant(record, "release")
                _record_movement(
                    db, record, MovementType.RELEASE, take, record.quantity,
                    reference_type, reference_id,
                    notes=notes or f"Reservation released for {reference_type} #{reference_id}",
                    actor=actor
                )
                releases.append(WarehouseRelease(warehouse_id=record.warehouse_id, quantity_released=take))

        logger.info(f"Released {quantity} of product {product_id} for {reference_type} #{reference_id}")
        return releases

    # ===================== DEDUCT / ADJUST =====================

    @staticmethod
    def deduct_stock(
        db: Session,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        reference_type: str,
        reference_id: str,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
        reservation_reference_type: Optional[str] = None,
        reservation_reference_id: Optional[str] = None
    ) -> StockRecord:
        """
        Ship reserved stock out of a warehouse: lowers quantity and reserved quantity together.

        The units come out of one document's reservation in that warehouse:
        reservation_reference_type/id when the shipment is booked under a
        different document (a delivery order shipping a sales order), else
        the deducting document itself. That document must hold at least
        `quantity` there.
        """
        _require_positive(quantity)
        if reservation_reference_type is None and reservation_reference_id is None:
            reservation_reference_type, reservation_reference_id = reference_type, reference_id
        elif reservation_reference_type is None or reservation_reference_id is None:
            raise ValidationError("reservation_reference_type and reservation_reference_id go together")

        with ledger_transaction(db, "deduct"):
            record = _lock_record(db, product_id, warehouse_id)

            if record.quantity < quantity:
                logger.warning(f"Deduction refused for product {product_id}: on hand {record.quantity}, requested {quantity}")
                raise InsufficientStockError(
                    f"Insufficient physical stock. Quantity: {record.quantity}, Requested: {quantity}",
                    requested=quantity,
                    available=record.quantity
                )
            if record.reserved_quantity < quantity:
                logger.warning(f"Deduction refused for product {product_id}: reserved {record.reserved_quantity}, requested {quantity}")
                raise InsufficientStockError(
                    f"Insufficient reserved stock. Reserved: {record.reserved_quantity}, Requested: {quantity}",
                    requested=quantity,
                    available=record.reserved_quantity
                )

            held = sum(
                h.quantity_reserved
                for h in StockLedger.get_document_reservations(
                    db, product_id, reservation_reference_type, reservation_reference_id
                )
                if h.warehouse_id == record.warehouse_id
            )
            if held < quantity:
                logger.warning(
                    f"Deduction refused for product {product_id}: {reservation_reference_type} "
                    f"#{reservation_reference_id} holds {held} in warehouse {warehouse_id}, requested {quantity}"
                )
                raise InsufficientStockError(
                    f"Insufficient stock reserved for {reservation_reference_type} #{reservation_reference_id}. "
                    f"Reserved: {held}, Requested: {quantity}",
                    requested=quantity,
                    available=held
                )

            previous = record.quantity
            record.quantity -= quantity
            record.reserved_quantity -= quantity
            _check_invariant(record, "deduct")
            _record_movement(
                db, record, MovementType.DEDUCTION, -quantity, previous,
                reference_type, reference_id, notes=notes, actor=actor,
                reservation_reference_type=reservation_reference_type,
                reservation_reference_id=reservation_reference_id
            )

        db.refresh(record)
        logger.info(
            f"Deducted {quantity} of product {product_id} from warehouse {warehouse_id} "
            f"for {reference_type} #{reference_id}, on hand now {record.quantity}"
        )
        return record

    @staticmethod
    def adjust_stock(
        db: Session,
        product_id: UUID,
        warehouse_id: UUID,
        delta: int,
        reason: str,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None
    ) -> StockRecord:
        """
        Manual correction of on-hand quantity (stocktake, damage, loss, receipt).

        The result must stay >= 0 and >= the reserved quantity.
        """
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError(f"delta must be a non-zero integer, got {delta!r}")
        if not reason or not reason.strip():
            raise ValidationError("reason is required for a stock adjustment")

        with ledger_transaction(db, "adjust"):
            record = _lock_record(db, product_id, warehouse_id)
            new_quantity = record.quantity + delta

            if new_quantity < 0:
                logger.warning(f"Adjustment refused for product {product_id}: on hand {record.quantity}, delta {delta}")
                raise InsufficientStockError(
                    f"Insufficient stock for adjustment. Quantity: {record.quantity}, Change: {delta}",
                    requested=-delta,
                    available=record.quantity
                )
            if new_quantity < record.reserved_quantity:
                logger.warning(
                    f"Adjustment refused for product {product_id}: would leave {new_quantity} "
                    f"below reserved {record.reserved_quantity}"
                )
                raise InsufficientStockError(
                    f"Cannot reduce stock below reserved quantity. Reserved: {record.reserved_quantity}, "
                    f"Resulting quantity: {new_quantity}",
                    requested=-delta,
                    available=record.available_quantity
                )

            previous = record.quantity
            record.quantity = new_quantity
            _check_invariant(record, "adjust")
            _record_movement(
                db, record,
                MovementType.ADJUSTMENT_IN if delta > 0 else MovementType.ADJUSTMENT_OUT,
                delta, previous,
                reference_type or "StockRecord", reference_id or record.id,
                notes=f"{reason} - {notes}" if notes else reason,
                actor=actor
            )

        db.refresh(record)
        logger.info(
            f"Stock adjusted for product {product_id} in warehouse {warehouse_id}: "
            f"{previous} -> {record.quantity} ({reason}, by {actor or 'system'})"
        )
        return record

    @staticmethod
    def apply_adjustment(
        db: Session,
        stock_record_id: UUID,
        adjustment_type: str,
        quantity: int,
        reason: str,
        notes: Optional[str] = None,
        actor: Optional[str] = None
    ) -> dict:
        """Increase/decrease a stock record by id, as submitted from the stock screen"""
        _require_positive(quantity)
        if adjustment_type not in ("increase", "decrease"):
            raise ValidationError(f"adjustment_type must be 'increase' or 'decrease', got {adjustment_type!r}")

        with ledger_transaction(db, "adjust"):
            record = db.query(StockRecord).filter(StockRecord.id == stock_record_id).first()
            if not record:
                raise NotFoundError(f"Stock record {stock_record_id} not found")
            product_id, warehouse_id = record.product_id, record.warehouse_id

        delta = quantity if adjustment_type == "increase" else -quantity
        record = StockLedger.adjust_stock(
            db, product_id, warehouse_id, delta, reason, actor=actor, notes=notes
        )
        return {
            "success": True,
            "message": "Stock adjusted successfully",
            "new_quantity": record.quantity,
            "adjustment_type": adjustment_type,
            "quantity_changed": quantity
        }

    # ===================== READS =====================

    @staticmethod
    def get_availability(db: Session, product_id: UUID) -> Availability:
        """Available quantity per warehouse and in total. No locks taken."""
        rows = db.query(StockRecord, Warehouse).join(
            Warehouse, Warehouse.id == StockRecord.warehouse_id
        ).filter(
            StockRecord.product_id == product_id
        ).order_by(Warehouse.code).all()

        per_warehouse = [
            WarehouseAvailability(
                warehouse_id=warehouse.id,
                warehouse_code=warehouse.code,
                warehouse_name=warehouse.name,
                quantity=record.quantity,
                reserved_quantity=record.reserved_quantity,
                available=record.available_quantity
            )
            for record, warehouse in rows
        ]
        return Availability(
            product_id=product_id,
            total_available=sum(w.available for w in per_warehouse),
            per_warehouse=per_warehouse
        )

    @staticmethod
    def check_availability(db: Session, items: Iterable) -> bool:
        """
        Advisory preflight for a multi-line reservation.

        True only if every product's requested total fits in its total
        available stock. Takes no locks: reserve_stock remains the gate.
        """
        requested: Dict[UUID, int] = {}
        for item in items:
            product_id = item["product_id"] if isinstance(item, dict) else item.product_id
            quantity = item["quantity"] if isinstance(item, dict) else item.quantity
            _require_positive(quantity)
            requested[product_id] = requested.get(product_id, 0) + quantity

        if not requested:
            return True

        available = dict(
            db.query(
                StockRecord.product_id,
                func.sum(StockRecord.quantity - StockRecord.reserved_quantity)
            ).filter(
                StockRecord.product_id.in_(list(requested))
            ).group_by(StockRecord.product_id).all()
        )

        for product_id, quantity in requested.items():
            total_available = int(available.get(product_id) or 0)
            if total_available < quantity:
                logger.warning(
                    f"Stock shortage for product {product_id}: required {quantity}, "
                    f"available {total_available}, shortage {quantity - total_available}"
                )
                return False
        return True

    @staticmethod
    def get_document_reservations(
        db: Session,
        product_id: UUID,
        reference_type: str,
        reference_id: str
    ) -> List[DocumentReservation]:
        """
        Net quantity a document still holds per warehouse, most recently reserved first.

        Reservations and releases count under their own reference; deductions
        count against the reservation they consumed, whatever document they
        were booked under.
        """
        reference_id = str(reference_id)
        # Reservation and deduction changes are negative, releases positive
        net_reserved = func.sum(
            case(
                (MovementRecord.type == MovementType.RESERVATION.value, -MovementRecord.quantity_change),
                (MovementRecord.type == MovementType.RELEASE.value, -MovementRecord.quantity_change),
                (MovementRecord.type == MovementType.DEDUCTION.value, MovementRecord.quantity_change),
                else_=0
            )
        )
        rows = db.query(
            MovementRecord.warehouse_id,
            net_reserved.label("net_reserved"),
            func.max(MovementRecord.created_at).label("last_at")
        ).filter(
            MovementRecord.product_id == product_id,
            or_(
                and_(
                    MovementRecord.type.in_([MovementType.RESERVATION.value, MovementType.RELEASE.value]),
                    MovementRecord.reference_type == reference_type,
                    MovementRecord.reference_id == reference_id
                ),
                and_(
                    MovementRecord.type == MovementType.DEDUCTION.value,
                    MovementRecord.reservation_reference_type == reference_type,
                    MovementRecord.reservation_reference_id == reference_id
                )
            )
        ).group_by(MovementRecord.warehouse_id).order_by(
            func.max(MovementRecord.created_at).desc(),
            MovementRecord.warehouse_id
        ).all()

        return [
            DocumentReservation(warehouse_id=row.warehouse_id, quantity_reserved=int(row.net_reserved))
            for row in rows
            if row.net_reserved and row.net_reserved > 0
        ]

    # ===================== REGISTRY =====================

    @staticmethod
    def register_stock(
        db: Session,
        product_id: UUID,
        warehouse_id: UUID,
        min_stock_level: int = 0
    ) -> StockRecord:
        """Register a product against a warehouse with zero quantities"""
        if min_stock_level < 0:
            raise ValidationError("min_stock_level cannot be negative")

        with ledger_transaction(db, "register"):
            _require_product(db, product_id)
            if not db.query(Warehouse).filter(Warehouse.id == warehouse_id).first():
                raise ValidationError(f"Unknown warehouse {warehouse_id}")

            existing = db.query(StockRecord).filter(
                StockRecord.product_id == product_id,
                StockRecord.warehouse_id == warehouse_id
            ).first()
            if existing:
                raise ValidationError("Product stock record already exists for this product and warehouse")

            record = StockRecord(
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=0,
                reserved_quantity=0,
                min_stock_level=min_stock_level
            )
            db.add(record)
            db.flush()

        db.refresh(record)
        logger.info(f"Registered product {product_id} in warehouse {warehouse_id}")
        return record

    @staticmethod
    def update_min_stock_level(db: Session, stock_record_id: UUID, min_stock_level: int) -> StockRecord:
        if min_stock_level < 0:
            raise ValidationError("min_stock_level cannot be negative")

        with ledger_transaction(db, "update"):
            record = db.query(StockRecord).filter(StockRecord.id == stock_record_id).with_for_update().first()
            if not record:
                raise NotFoundError(f"Stock record {stock_record_id} not found")
            record.min_stock_level = min_stock_level

        db.refresh(record)
        return record

    @staticmethod
    def delete_stock_record(db: Session, stock_record_id: UUID) -> None:
        """Delete a stock record that has never moved"""
        with ledger_transaction(db, "delete"):
            record = db.query(StockRecord).filter(StockRecord.id == stock_record_id).with_for_update().first()
            if not record:
                raise NotFoundError(f"Stock record {stock_record_id} not found")

            history = db.query(MovementRecord.id).filter(
                MovementRecord.product_id == record.product_id,
                MovementRecord.warehouse_id == record.warehouse_id
            ).first()
            if history:
                raise ValidationError("Stock record has movement history and cannot be deleted")

            db.delete(record)

        logger.info(f"Deleted stock record {stock_record_id}")
