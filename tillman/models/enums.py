"""
Enums for Tillman models.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class MovementType(models.TextChoices):
    """
    Cause of a ledger entry.

    Sign convention is carried by the delta, not by the type:
    a RETURN is normally positive, a SALE normally negative.
    """
    ADJUSTMENT = 'adjustment', _('Adjustment')
    TRANSFER_OUT = 'transfer-out', _('Transfer out')
    TRANSFER_IN = 'transfer-in', _('Transfer in')
    SALE = 'sale', _('Sale')
    PURCHASE_RECEIPT = 'purchase-receipt', _('Purchase receipt')
    RETURN = 'return', _('Return')
    DAMAGE = 'damage', _('Damage')
    EXPIRED = 'expired', _('Expired')


class SaleStatus(models.TextChoices):
    """
    Checkout lifecycle.

    DRAFT and PRICED only exist in memory (see tillman.pricing);
    a Sale row is first written at STOCK_RESERVED.
    """
    DRAFT = 'draft', _('Draft')
    PRICED = 'priced', _('Priced')
    STOCK_RESERVED = 'stock_reserved', _('Stock reserved')
    PAYMENTS_COLLECTED = 'payments_collected', _('Payments collected')
    COMPLETED = 'completed', _('Completed')
    ABORTED = 'aborted', _('Aborted')
    VOIDED = 'voided', _('Voided')


class PaymentMethod(models.TextChoices):
    CASH = 'cash', _('Cash')
    CARD = 'card', _('Card')
    CHECK = 'check', _('Check')
    GIFT_CARD = 'gift_card', _('Gift card')
    STORE_CREDIT = 'store_credit', _('Store credit')
    OTHER = 'other', _('Other')


class PaymentKind(models.TextChoices):
    """Payments collect money, refunds are the negative settlement of a void."""
    PAYMENT = 'payment', _('Payment')
    REFUND = 'refund', _('Refund')


# States from which abort() is allowed
OPEN_SALE_STATUSES = (
    SaleStatus.DRAFT,
    SaleStatus.PRICED,
    SaleStatus.STOCK_RESERVED,
    SaleStatus.PAYMENTS_COLLECTED,
)
