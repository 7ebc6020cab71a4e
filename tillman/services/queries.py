"""
Stock queries — read-only operations.

All methods are classmethod and use no locking.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from django.db.models import DecimalField, ExpressionWrapper, F, Sum
from django.db.models.functions import Coalesce

from tillman.exceptions import ValidationError
from tillman.models.location import Location
from tillman.models.movement import StockMovement
from tillman.models.record import InventoryRecord
from tillman.protocols.context import OperationContext
from tillman.services.thresholds import StockLevel, StockThresholds, classify


@dataclass(frozen=True)
class InventoryFilter:
    subject_id: str | None = None
    location_id: int | None = None
    # 'low' or 'out'; None = every level
    level: str | None = None
    include_inactive: bool = False
    include_empty: bool = True


@dataclass(frozen=True)
class MovementFilter:
    record_id: int | None = None
    subject_id: str | None = None
    location_id: int | None = None
    movement_type: str | None = None
    reference: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = 100
    offset: int = 0


class StockQueries:
    """Read-only stock query methods."""

    @classmethod
    def get_inventory(cls, ctx: OperationContext,
                      filters: InventoryFilter | None = None) -> list[InventoryRecord]:
        """
        Inventory records of the tenant.

        Level filtering uses the same thresholds as the evaluator, so
        'low' here and 'low-stock' on a dashboard always agree.
        """
        filters = filters or InventoryFilter()
        qs = (
            InventoryRecord.objects.for_tenant(ctx.tenant_id)
            .select_related('location')
            .order_by('subject_id', 'location__code')
        )

        if filters.subject_id:
            qs = qs.for_subject(filters.subject_id)
        if filters.location_id is not None:
            qs = qs.filter(location_id=filters.location_id)
        if not filters.include_inactive:
            qs = qs.active()
        if not filters.include_empty:
            qs = qs.filter(quantity__gt=0)

        records = list(qs)
        if filters.level is None:
            return records

        levels = {'low': StockLevel.LOW_STOCK, 'out': StockLevel.OUT_OF_STOCK}
        if filters.level not in levels:
            raise ValidationError('INVALID_LEVEL', level=filters.level)
        wanted = levels[filters.level]
        thresholds = StockThresholds.catalog_thresholds(r.subject_id for r in records)
        return [r.record for r in classify(records, thresholds) if r.level == wanted]

    @classmethod
    def get_movements(cls, ctx: OperationContext, filters: MovementFilter | None = None):
        """Ledger entries, newest first."""
        filters = filters or MovementFilter()
        qs = (
            StockMovement.objects.filter(tenant_id=ctx.tenant_id)
            .select_related('record', 'record__location')
            .order_by('-timestamp', '-pk')
        )

        if filters.record_id is not None:
            qs = qs.filter(record_id=filters.record_id)
        if filters.subject_id:
            qs = qs.filter(record__subject_id=filters.subject_id)
        if filters.location_id is not None:
            qs = qs.filter(record__location_id=filters.location_id)
        if filters.movement_type:
            qs = qs.filter(movement_type=filters.movement_type)
        if filters.reference:
            qs = qs.filter(reference=filters.reference)
        if filters.since is not None:
            qs = qs.filter(timestamp__gte=filters.since)
        if filters.until is not None:
            qs = qs.filter(timestamp__lte=filters.until)

        if filters.limit is None:
            return list(qs[filters.offset:])
        return list(qs[filters.offset:filters.offset + filters.limit])

    @classmethod
    def inventory_summary(cls, ctx: OperationContext, recent: int = 10) -> dict:
        """Dashboard numbers for the tenant."""
        records = list(
            InventoryRecord.objects.for_tenant(ctx.tenant_id).active().select_related('location')
        )
        thresholds = StockThresholds.catalog_thresholds(r.subject_id for r in records)
        levels = [r.level for r in classify(records, thresholds)]

        value = InventoryRecord.objects.for_tenant(ctx.tenant_id).active().aggregate(
            v=Coalesce(
                Sum(ExpressionWrapper(
                    F('quantity') * F('unit_cost'),
                    output_field=DecimalField(max_digits=18, decimal_places=2),
                )),
                Decimal('0.00'),
                output_field=DecimalField(max_digits=18, decimal_places=2),
            )
        )['v']

        return {
            'record_count': len(records),
            'location_count': Location.objects.for_tenant(ctx.tenant_id).active().count(),
            'low_stock_count': levels.count(StockLevel.LOW_STOCK),
            'out_of_stock_count': levels.count(StockLevel.OUT_OF_STOCK),
            'total_value': Decimal(value).quantize(Decimal('0.01')),
            'recent_movements': cls.get_movements(ctx, MovementFilter(limit=recent)),
        }
