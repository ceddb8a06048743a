import os

# The module-level engine must not point at PostgreSQL during tests
os.environ.setdefault("DB_URL", "sqlite:///./stockledger_test.db")

import pytest
from sqlalchemy.orm import sessionmaker

from stockledger.core import Base, build_engine
from stockledger.models import Product, Warehouse, StockRecord, MovementRecord, MovementType
from stockledger.services import StockLedger


@pytest.fixture
def engine(tmp_path):
    # File-backed so several connections (threads) share one database
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def make_product(db, sku="SKU-001", name=None):
    product = Product(sku=sku, name=name or f"Product {sku}")
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def make_warehouse(db, code="WH1", priority=100, name=None):
    warehouse = Warehouse(code=code, name=name or f"Warehouse {code}", priority=priority)
    db.add(warehouse)
    db.commit()
    db.refresh(warehouse)
    return warehouse


def seed_stock(db, product, warehouse, quantity, reserved=0):
    """Register stock with an opening balance and an opening reservation"""
    record = StockLedger.register_stock(db, product.id, warehouse.id)
    if quantity:
        StockLedger.adjust_stock(db, product.id, warehouse.id, quantity, "opening balance", actor="seed")
    if reserved:
        record = db.query(StockRecord).filter(StockRecord.id == record.id).one()
        record.reserved_quantity = reserved
        db.add(MovementRecord(
            product_id=product.id,
            warehouse_id=warehouse.id,
            type=MovementType.RESERVATION.value,
            quantity_change=-reserved,
            previous_quantity=record.quantity,
            new_quantity=record.quantity,
            reference_type="Seed",
            reference_id="opening"
        ))
        db.commit()
    db.refresh(record)
    return record


def get_record(db, product, warehouse):
    db.expire_all()
    return db.query(StockRecord).filter(
        StockRecord.product_id == product.id,
        StockRecord.warehouse_id == warehouse.id
    ).one()


def movements_of(db, product, movement_type=None):
    query = db.query(MovementRecord).filter(MovementRecord.product_id == product.id)
    if movement_type:
        query = query.filter(MovementRecord.type == movement_type.value)
    return query.order_by(MovementRecord.created_at).all()
