"""
Location model — Where stock is kept.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class LocationQuerySet(models.QuerySet):

    def for_tenant(self, tenant_id):
        return self.filter(tenant_id=tenant_id)

    def active(self):
        return self.filter(is_active=True)


class Location(models.Model):
    """
    A store, warehouse or stockroom belonging to one tenant.

    Locations are stable entities, created during tenant setup.
    They are never deleted while inventory references them
    (on_delete=PROTECT on InventoryRecord).

    Examples:
        Location.objects.create(tenant_id='acme', code='main', name='Main Street', is_default=True)
        Location.objects.create(tenant_id='acme', code='wh-1', name='Warehouse 1')
    """

    tenant_id = models.CharField(
        max_length=64,
        db_index=True,
        verbose_name=_('Tenant'),
    )
    code = models.SlugField(
        max_length=50,
        verbose_name=_('Code'),
        help_text=_('Unique per tenant (e.g. main, warehouse)'),
    )
    name = models.CharField(
        max_length=100,
        verbose_name=_('Name'),
    )
    is_active = models.BooleanField(
        default=True,
        verbose_name=_('Active'),
    )
    is_default = models.BooleanField(
        default=False,
        verbose_name=_('Default location'),
        help_text=_('Used when a call does not name a location.'),
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        verbose_name=_('Metadata'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = LocationQuerySet.as_manager()

    class Meta:
        verbose_name = _('Location')
        verbose_name_plural = _('Locations')
        ordering = ['tenant_id', 'code']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'code'],
                name='unique_location_code_per_tenant',
            ),
        ]

    def __str__(self) -> str:
        return self.name
