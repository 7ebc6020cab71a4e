"""
InventoryRecord model — Stock level of one subject at one location.
"""

from django.db import models
from django.db.models import F, Q
from django.utils.translation import gettext_lazy as _


class InventoryRecordQuerySet(models.QuerySet):
    """QuerySet with helper methods for inventory queries."""

    def for_tenant(self, tenant_id):
        return self.filter(tenant_id=tenant_id)

    def for_subject(self, subject_id):
        return self.filter(subject_id=subject_id)

    def at_location(self, location):
        return self.filter(location=location)

    def active(self):
        return self.filter(is_active=True)

    def with_available(self):
        """Annotate `available` = quantity - reserved (usable in filters/ordering)."""
        return self.annotate(available=F('quantity') - F('reserved_quantity'))

    def out_of_stock(self):
        return self.with_available().filter(available__lte=0)


class InventoryRecord(models.Model):
    """
    Quantity of a subject (product or variant) at a location.

    Identity is (subject_id, location); a location belongs to exactly
    one tenant, so the pair is unique across the tenant as well.

    Invariants (also enforced by database constraints):
    - quantity >= 0
    - 0 <= reserved_quantity <= quantity
    - available = quantity - reserved_quantity, hence available >= 0

    Mutation:
    - ONLY through tillman.services.store.InventoryStore.apply_delta
    - `version` is bumped on every write and checked on update
      (compare-and-swap), so a lost race is detected even on
      databases without row locks.

    Records are never deleted once they have movements;
    use is_active=False to hide them.
    """

    tenant_id = models.CharField(
        max_length=64,
        db_index=True,
        verbose_name=_('Tenant'),
    )
    subject_id = models.CharField(
        max_length=64,
        verbose_name=_('Subject'),
        help_text=_('Product or variant identifier'),
    )
    location = models.ForeignKey(
        'tillman.Location',
        on_delete=models.PROTECT,
        related_name='records',
        verbose_name=_('Location'),
    )

    quantity = models.IntegerField(
        default=0,
        verbose_name=_('Quantity on hand'),
    )
    reserved_quantity = models.IntegerField(
        default=0,
        verbose_name=_('Reserved'),
    )

    reorder_point = models.IntegerField(
        null=True,
        blank=True,
        verbose_name=_('Reorder point'),
        help_text=_('Restock recommended when available drops to this value'),
    )
    reorder_quantity = models.IntegerField(
        null=True,
        blank=True,
        verbose_name=_('Reorder quantity'),
    )
    max_stock_level = models.IntegerField(
        null=True,
        blank=True,
        verbose_name=_('Max stock level'),
    )
    unit_cost = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        verbose_name=_('Location cost price'),
    )
    last_counted_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name=_('Last counted at'),
    )

    is_active = models.BooleanField(default=True, verbose_name=_('Active'))
    version = models.PositiveIntegerField(default=0, editable=False)

    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = InventoryRecordQuerySet.as_manager()

    class Meta:
        verbose_name = _('Inventory record')
        verbose_name_plural = _('Inventory records')
        ordering = ['subject_id', 'location_id']
        constraints = [
            models.UniqueConstraint(
                fields=['subject_id', 'location'],
                name='unique_record_subject_location',
            ),
            models.CheckConstraint(
                condition=Q(quantity__gte=0),
                name='record_quantity_non_negative',
            ),
            models.CheckConstraint(
                condition=Q(reserved_quantity__gte=0) & Q(reserved_quantity__lte=F('quantity')),
                name='record_reserved_within_quantity',
            ),
        ]
        indexes = [
            models.Index(fields=['tenant_id', 'subject_id'], name='tillman_rec_tenant_subj_idx'),
            models.Index(fields=['location', 'is_active'], name='tillman_rec_loc_active_idx'),
        ]

    @property
    def available_quantity(self) -> int:
        """Quantity that can be sold or transferred out."""
        return self.quantity - self.reserved_quantity

    @property
    def lock_key(self) -> tuple[str, int]:
        """Deterministic ordering key for multi-record locking."""
        return (self.subject_id, self.location_id)

    def __str__(self) -> str:
        return f"{self.subject_id} @ {self.location_id}: {self.quantity} ({self.reserved_quantity} reserved)"
