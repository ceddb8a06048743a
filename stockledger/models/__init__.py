from .base import TimestampMixin, UUIDMixin
from .master import Warehouse, Product
from .stock import StockRecord, MovementRecord, MovementType, ON_HAND_MOVEMENTS

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Master
    "Warehouse", "Product",
    # Stock
    "StockRecord", "MovementRecord", "MovementType", "ON_HAND_MOVEMENTS",
]
