"""
StockMovement model — Immutable ledger of quantity changes.
"""

from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from tillman.models.enums import MovementType


class StockMovementQuerySet(models.QuerySet):

    def for_record(self, record):
        return self.filter(record=record)

    def chronological(self):
        """Replay order: timestamp, then insertion order for ties."""
        return self.order_by('timestamp', 'pk')

    def with_reference(self, reference):
        return self.filter(reference=reference)

    def update(self, **kwargs):
        raise ValueError("Stock movements are immutable.")

    def delete(self):
        raise ValueError("Stock movements are immutable.")


class StockMovement(models.Model):
    """
    Immutable record of one quantity change on one InventoryRecord.

    Rules:
    - NEVER update() or delete()
    - Corrections are new movements (is_correction=True for counts)
    - after_quantity == before_quantity + delta (database constraint)
    - Replaying a record's movements chronologically gives its quantity

    Movements are written only by InventoryStore.apply_delta, in the
    same transaction that updates the record.
    """

    record = models.ForeignKey(
        'tillman.InventoryRecord',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('Inventory record'),
    )
    tenant_id = models.CharField(max_length=64, db_index=True)

    movement_type = models.CharField(
        max_length=20,
        choices=MovementType.choices,
        db_index=True,
        verbose_name=_('Type'),
    )
    delta = models.IntegerField(
        verbose_name=_('Delta'),
        help_text=_('Positive = in, Negative = out'),
    )
    before_quantity = models.IntegerField(verbose_name=_('Before'))
    after_quantity = models.IntegerField(verbose_name=_('After'))

    reason_code = models.CharField(
        max_length=50,
        verbose_name=_('Reason code'),
        help_text=_('Required. E.g. "count", "damaged", "sale"'),
    )
    reason_text = models.CharField(
        max_length=255,
        blank=True,
        default='',
        verbose_name=_('Reason'),
    )
    reference = models.CharField(
        max_length=64,
        blank=True,
        default='',
        db_index=True,
        verbose_name=_('External reference'),
        help_text=_('Sale number, transfer id or purchase order id'),
    )
    is_correction = models.BooleanField(
        default=False,
        verbose_name=_('Correction'),
        help_text=_('Reconciliation count that set quantity directly'),
    )
    actor = models.CharField(max_length=64, blank=True, default='', verbose_name=_('Actor'))
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_('Metadata'))

    timestamp = models.DateTimeField(default=timezone.now, db_index=True, verbose_name=_('Timestamp'))

    objects = StockMovementQuerySet.as_manager()

    class Meta:
        verbose_name = _('Stock movement')
        verbose_name_plural = _('Stock movements')
        ordering = ['timestamp', 'pk']
        constraints = [
            models.CheckConstraint(
                condition=Q(after_quantity=F('before_quantity') + F('delta')),
                name='movement_after_equals_before_plus_delta',
            ),
        ]
        indexes = [
            models.Index(fields=['record', 'timestamp'], name='tillman_mov_record_ts_idx'),
            models.Index(fields=['tenant_id', 'timestamp'], name='tillman_mov_tenant_ts_idx'),
        ]

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValueError(
                "Stock movements are immutable. "
                "To correct, append a new movement."
            )
        if not self.reason_code:
            raise ValueError("reason_code is required")
        if self.after_quantity != self.before_quantity + self.delta:
            raise ValueError("after_quantity must equal before_quantity + delta")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError(
            "Stock movements are immutable. "
            "To reverse, append a movement with the opposite delta."
        )

    def __str__(self) -> str:
        signal = '+' if self.delta > 0 else ''
        return f"{signal}{self.delta} {self.movement_type} | {self.reason_code}"
