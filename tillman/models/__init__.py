"""
Tillman Models.

Core models for the inventory ledger and POS engine:
- Location: Where stock is kept
- InventoryRecord: Quantity of a subject at a location
- StockMovement: Immutable ledger of quantity changes
- Sale / SaleLine / Payment: POS checkout and its payment log
"""

from tillman.models.enums import MovementType, PaymentKind, PaymentMethod, SaleStatus
from tillman.models.location import Location
from tillman.models.movement import StockMovement
from tillman.models.record import InventoryRecord
from tillman.models.sale import Payment, Sale, SaleLine

__all__ = [
    'MovementType',
    'SaleStatus',
    'PaymentMethod',
    'PaymentKind',
    'Location',
    'InventoryRecord',
    'StockMovement',
    'Sale',
    'SaleLine',
    'Payment',
]
