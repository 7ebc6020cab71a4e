"""
Django Tillman — Inventory ledger and point-of-sale transaction engine.

Usage:
    from tillman import till, TillmanError

    till.adjust_stock(ctx, 'SKU-1', 50, reason_code='count')
    sale = till.begin_sale(ctx, [{'subject_id': 'SKU-1', 'quantity': 3, 'unit_price': '10.00'}])
    till.add_payment(ctx, sale.pk, 'cash', '30.00')
    till.complete_sale(ctx, sale.pk)
"""

_ERRORS = (
    'TillmanError',
    'NotFoundError',
    'InsufficientStockError',
    'InvalidTransferError',
    'PaymentMismatchError',
    'ConcurrentModificationError',
    'ValidationError',
    'InvalidStateError',
)

_MODELS = (
    'Location',
    'InventoryRecord',
    'StockMovement',
    'Sale',
    'SaleLine',
    'Payment',
    'MovementType',
    'SaleStatus',
    'PaymentMethod',
    'PaymentKind',
)


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'till':
        from tillman.service import Till
        return Till
    elif name == 'OperationContext':
        from tillman.protocols.context import OperationContext
        return OperationContext
    elif name in _ERRORS:
        from tillman import exceptions
        return getattr(exceptions, name)
    elif name in _MODELS:
        from tillman import models
        return getattr(models, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ['till', 'OperationContext', *_ERRORS, *_MODELS]

__version__ = '0.1.0'
