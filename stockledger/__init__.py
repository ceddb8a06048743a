"""
StockLedger - Multi-warehouse stock reservation and deduction
"""
__version__ = "1.0.0"
