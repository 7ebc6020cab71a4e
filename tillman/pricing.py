"""
Cart pricing — pure functions over immutable line data.

This is the authoritative computation of sale totals. A UI may mirror it
for responsiveness, but the sale orchestrator always recomputes:

    line_total = quantity * unit_price - line_discount
    subtotal   = sum(line_total)
    total      = subtotal - order_discount + tax_amount

Amounts are Decimal, quantized to cents with ROUND_HALF_UP.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from tillman.exceptions import ValidationError
from tillman.models.enums import SaleStatus

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(value: Any, field_name: str = 'amount') -> Decimal:
    """Coerce to a cent-quantized Decimal (floats go through str())."""
    if isinstance(value, bool):
        raise ValidationError('INVALID_AMOUNT', **{field_name: value})
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if not amount.is_finite():
            raise InvalidOperation
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError('INVALID_AMOUNT', **{field_name: value}) from None


@dataclass(frozen=True)
class CartLine:
    """
    A line as supplied by the caller.

    unit_price may be None: the orchestrator then fills it from the
    catalog before pricing.
    """

    subject_id: str
    quantity: int
    unit_price: Decimal | None = None
    line_discount: Decimal = ZERO

    @classmethod
    def from_dict(cls, data: dict) -> CartLine:
        return cls(
            subject_id=data['subject_id'],
            quantity=data['quantity'],
            unit_price=data.get('unit_price'),
            line_discount=data.get('line_discount', ZERO),
        )


@dataclass(frozen=True)
class PricedLine:
    subject_id: str
    quantity: int
    unit_price: Decimal
    line_discount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class Cart:
    """DRAFT: lines plus order-level adjustments, nothing priced yet."""

    lines: tuple[CartLine, ...]
    order_discount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    status: SaleStatus = field(default=SaleStatus.DRAFT)


@dataclass(frozen=True)
class PricedCart:
    """PRICED: totals computed, still in memory only."""

    lines: tuple[PricedLine, ...]
    subtotal: Decimal
    order_discount: Decimal
    tax_amount: Decimal
    total: Decimal
    status: SaleStatus = field(default=SaleStatus.PRICED)

    @property
    def quantities(self) -> dict[str, int]:
        """Total quantity per subject (one subject may appear on several lines)."""
        result: dict[str, int] = {}
        for line in self.lines:
            result[line.subject_id] = result.get(line.subject_id, 0) + line.quantity
        return result


def price_line(line: CartLine) -> PricedLine:
    if not line.subject_id:
        raise ValidationError('INVALID_QUANTITY', subject=line.subject_id)
    qty = line.quantity
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise ValidationError('INVALID_QUANTITY', subject=line.subject_id, quantity=qty)
    if line.unit_price is None:
        raise ValidationError('PRICE_REQUIRED', subject=line.subject_id)

    unit_price = to_money(line.unit_price, 'unit_price')
    discount = to_money(line.line_discount, 'line_discount')
    if unit_price < ZERO:
        raise ValidationError('INVALID_AMOUNT', subject=line.subject_id, unit_price=unit_price)
    if discount < ZERO:
        raise ValidationError('INVALID_AMOUNT', subject=line.subject_id, line_discount=discount)

    return PricedLine(
        subject_id=line.subject_id,
        quantity=qty,
        unit_price=unit_price,
        line_discount=discount,
        line_total=(unit_price * qty - discount).quantize(CENT, rounding=ROUND_HALF_UP),
    )


def price_cart(cart: Cart) -> PricedCart:
    """
    DRAFT -> PRICED.

    Raises:
        ValidationError('EMPTY_CART'): no lines
        ValidationError('NEGATIVE_TOTAL'): discounts exceed the amount due
        ValidationError('INVALID_QUANTITY' | 'INVALID_AMOUNT' | 'PRICE_REQUIRED')
    """
    if not cart.lines:
        raise ValidationError('EMPTY_CART')

    priced = tuple(price_line(line) for line in cart.lines)
    order_discount = to_money(cart.order_discount, 'order_discount')
    tax_amount = to_money(cart.tax_amount, 'tax_amount')
    if order_discount < ZERO or tax_amount < ZERO:
        raise ValidationError(
            'INVALID_AMOUNT', order_discount=order_discount, tax_amount=tax_amount,
        )

    subtotal = sum((line.line_total for line in priced), ZERO)
    total = subtotal - order_discount + tax_amount
    if total < ZERO:
        raise ValidationError('NEGATIVE_TOTAL', subtotal=subtotal, total=total)

    return PricedCart(
        lines=priced,
        subtotal=subtotal,
        order_discount=order_discount,
        tax_amount=tax_amount,
        total=total,
    )


def within_tolerance(paid: Decimal, total: Decimal, tolerance: Decimal) -> bool:
    return abs(paid - total) <= tolerance
