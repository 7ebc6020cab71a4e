"""
Tillman services — modular organization of inventory and sale operations.

    from tillman.services import StockAdjustments, StockTransfers, SaleOrchestrator
"""

from tillman.services.adjustments import StockAdjustments
from tillman.services.ledger import StockLedger
from tillman.services.queries import StockQueries
from tillman.services.sales import SaleOrchestrator
from tillman.services.store import InventoryStore
from tillman.services.thresholds import StockThresholds
from tillman.services.transfers import StockTransfers

__all__ = [
    'InventoryStore',
    'StockLedger',
    'StockAdjustments',
    'StockTransfers',
    'SaleOrchestrator',
    'StockThresholds',
    'StockQueries',
]
