"""
Exceptions for Tillman.

All errors are TillmanError with a structured code for programmatic handling.
Subclasses group codes by how a caller should react to them.
"""

from decimal import Decimal
from typing import Any


class TillmanError(Exception):
    """
    Structured exception for inventory and sale operations.

    Usage:
        try:
            till.adjust_stock(ctx, 'SKU-1', -5, reason_code='damaged')
        except InsufficientStockError as e:
            print(f"Only {e.available} available")

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    _default_messages: dict[str, str] = {}
    retryable = False

    def __init__(self, code: str, message: str | None = None, **data: Any):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(self.message)

    def __str__(self) -> str:
        if not self.data:
            return f"[{self.code}] {self.message}"
        details = ", ".join(f"{k}={v}" for k, v in self.data.items())
        return f"[{self.code}] {self.message} ({details})"

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'data': {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.data.items()
            }
        }


class NotFoundError(TillmanError):
    _default_messages = {
        'RECORD_NOT_FOUND': 'Inventory record not found',
        'SALE_NOT_FOUND': 'Sale not found',
        'LOCATION_NOT_FOUND': 'Location not found',
        'PAYMENT_NOT_FOUND': 'Payment not found',
    }


class InsufficientStockError(TillmanError):
    """
    Requested quantity exceeds what is available.

    Always raised from under the record lock, with the values
    observed there.
    """

    _default_messages = {
        'INSUFFICIENT_STOCK': 'Requested quantity is not available',
    }

    def __init__(self, code: str = 'INSUFFICIENT_STOCK', message: str | None = None, **data: Any):
        super().__init__(code, message, **data)

    @property
    def available(self) -> int:
        return self.data.get('available', 0)

    @property
    def requested(self) -> int:
        return self.data.get('requested', 0)


class InvalidTransferError(TillmanError):
    _default_messages = {
        'SAME_LOCATION': 'Source and destination must differ',
        'INVALID_QUANTITY': 'Transfer quantity must be positive',
    }


class PaymentMismatchError(TillmanError):
    _default_messages = {
        'PAYMENT_MISMATCH': 'Payments do not match the sale total',
    }

    def __init__(self, code: str = 'PAYMENT_MISMATCH', message: str | None = None, **data: Any):
        super().__init__(code, message, **data)


class ConcurrentModificationError(TillmanError):
    """Lost a serialization race. Safe to retry the whole operation."""

    retryable = True
    _default_messages = {
        'CONCURRENT_MODIFICATION': 'Record was modified concurrently',
    }

    def __init__(self, code: str = 'CONCURRENT_MODIFICATION', message: str | None = None, **data: Any):
        super().__init__(code, message, **data)


class ValidationError(TillmanError):
    _default_messages = {
        'REASON_REQUIRED': 'Reason code is required',
        'INVALID_QUANTITY': 'Quantity must be positive',
        'INVALID_DELTA': 'Delta must be non-zero',
        'EMPTY_CART': 'A sale needs at least one line',
        'NEGATIVE_TOTAL': 'Computed total is negative',
        'INVALID_AMOUNT': 'Amount is invalid',
        'INVALID_METHOD': 'Unknown payment method',
        'INVALID_CARD': 'Card last four digits must be four digits',
        'PRICE_REQUIRED': 'No unit price supplied or known for subject',
        'RECORD_NOT_EMPTY': 'Only empty records can be deactivated',
        'INVALID_LEVEL': "Stock level filter must be 'low' or 'out'",
    }


class InvalidStateError(TillmanError):
    _default_messages = {
        'INVALID_STATUS': 'Operation not allowed in current status',
    }

    def __init__(self, code: str = 'INVALID_STATUS', message: str | None = None, **data: Any):
        super().__init__(code, message, **data)
