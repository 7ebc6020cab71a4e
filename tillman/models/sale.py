"""
Sale models — POS checkout, its lines and its payment log.
"""

from decimal import Decimal

from django.db import models
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from tillman.models.enums import (
    OPEN_SALE_STATUSES,
    PaymentKind,
    PaymentMethod,
    SaleStatus,
)


class SaleQuerySet(models.QuerySet):

    def for_tenant(self, tenant_id):
        return self.filter(tenant_id=tenant_id)

    def open(self):
        return self.filter(status__in=OPEN_SALE_STATUSES)


class Sale(models.Model):
    """
    A point-of-sale checkout.

    LIFECYCLE:

        DRAFT ──► PRICED ──► STOCK_RESERVED ──► PAYMENTS_COLLECTED ──► COMPLETED
          │          │              │                    │                  │
          └──────────┴──────────────┴────────────────────┘                  │
                                    │ abort()                               │ void()
                                    ▼                                       ▼
                                 ABORTED                                 VOIDED

    DRAFT/PRICED live in memory (PricedCart); the row is written
    together with the stock decrements at STOCK_RESERVED.

    Totals are computed server-side by tillman.pricing and frozen here.
    Once COMPLETED, ABORTED or VOIDED the sale is immutable except for
    the COMPLETED -> VOIDED transition.
    """

    tenant_id = models.CharField(max_length=64, db_index=True)
    number = models.CharField(
        max_length=40,
        verbose_name=_('Sale number'),
        help_text=_('SALE-YYYYMMDD-NNNN'),
    )
    location = models.ForeignKey(
        'tillman.Location',
        on_delete=models.PROTECT,
        related_name='sales',
        verbose_name=_('Location'),
    )
    status = models.CharField(
        max_length=20,
        choices=SaleStatus.choices,
        default=SaleStatus.STOCK_RESERVED,
        db_index=True,
        verbose_name=_('Status'),
    )
    actor = models.CharField(max_length=64, blank=True, default='', verbose_name=_('Sales person'))

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_('Subtotal'))
    discount_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name=_('Order discount'),
    )
    tax_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name=_('Tax'),
    )
    total = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_('Total'))
    tendered_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    change_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    void_reason = models.CharField(max_length=255, blank=True, default='')
    abort_reason = models.CharField(max_length=255, blank=True, default='')
    notes = models.TextField(blank=True, default='')
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    aborted_at = models.DateTimeField(null=True, blank=True)

    objects = SaleQuerySet.as_manager()

    class Meta:
        verbose_name = _('Sale')
        verbose_name_plural = _('Sales')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant_id', 'status'], name='tillman_sale_tenant_st_idx'),
            models.Index(fields=['location', 'created_at'], name='tillman_sale_loc_created_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'number'],
                name='unique_sale_number_per_tenant',
            ),
        ]

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_SALE_STATUSES

    @property
    def paid_amount(self) -> Decimal:
        """Sum of active (not removed) payment entries, refunds excluded."""
        return self.payments.active().filter(kind=PaymentKind.PAYMENT).aggregate(
            t=Coalesce(Sum('amount'), Decimal('0.00'))
        )['t']

    def __str__(self) -> str:
        return f"{self.number} [{self.status}] {self.total}"


class SaleLine(models.Model):
    """One priced line of a sale. Owned exclusively by its sale."""

    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name='lines',
    )
    position = models.PositiveIntegerField(default=0)
    subject_id = models.CharField(max_length=64, verbose_name=_('Subject'))
    quantity = models.PositiveIntegerField(verbose_name=_('Quantity'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_('Unit price'))
    line_discount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name=_('Line discount'),
    )
    line_total = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_('Line total'))

    class Meta:
        verbose_name = _('Sale line')
        verbose_name_plural = _('Sale lines')
        ordering = ['sale', 'position']

    def __str__(self) -> str:
        return f"{self.quantity}x {self.subject_id} @ {self.unit_price}"


class PaymentQuerySet(models.QuerySet):

    def active(self):
        return self.filter(removed_at__isnull=True)


class Payment(models.Model):
    """
    One entry of a sale's payment log.

    Entries are appended in `sequence` order and never edited in place:
    removing a payment stamps `removed_at`, voiding a sale appends REFUND
    entries with negative amounts. Only the log as it stands at the
    completion boundary is evaluated against the sale total.
    """

    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name='payments',
    )
    sequence = models.PositiveIntegerField()
    kind = models.CharField(
        max_length=10,
        choices=PaymentKind.choices,
        default=PaymentKind.PAYMENT,
    )
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    tendered_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_('Cash handed over; change = tendered - amount'),
    )

    card_last4 = models.CharField(max_length=4, blank=True, default='')
    card_brand = models.CharField(max_length=20, blank=True, default='')
    check_number = models.CharField(max_length=30, blank=True, default='')
    reference = models.CharField(max_length=64, blank=True, default='')

    created_at = models.DateTimeField(default=timezone.now)
    removed_at = models.DateTimeField(null=True, blank=True)

    objects = PaymentQuerySet.as_manager()

    class Meta:
        verbose_name = _('Payment')
        verbose_name_plural = _('Payments')
        ordering = ['sale', 'sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['sale', 'sequence'],
                name='unique_payment_sequence_per_sale',
            ),
        ]

    @property
    def change_given(self) -> Decimal:
        if self.tendered_amount is None:
            return Decimal('0.00')
        return max(Decimal('0.00'), self.tendered_amount - self.amount)

    def __str__(self) -> str:
        suffix = f" *{self.card_last4}" if self.card_last4 else ""
        return f"#{self.sequence} {self.kind} {self.method} {self.amount}{suffix}"
