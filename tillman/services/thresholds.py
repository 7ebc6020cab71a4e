"""
Threshold evaluator — low-stock / out-of-stock classification.

Usage:
    from tillman.services.thresholds import StockThresholds

    # Run on demand (dashboards) or periodically (cron)
    levels = StockThresholds.evaluate(ctx)
    # Returns list of StockLevel, one per active record

classify() is pure: it only reads the records and thresholds it is given.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from django.db import models

from tillman.adapters.catalog import get_catalog
from tillman.conf import tillman_settings
from tillman.models.record import InventoryRecord
from tillman.protocols.context import OperationContext

logger = logging.getLogger('tillman')


class StockLevel(models.TextChoices):
    OUT_OF_STOCK = 'out-of-stock', 'Out of stock'
    LOW_STOCK = 'low-stock', 'Low stock'
    IN_STOCK = 'in-stock', 'In stock'


@dataclass(frozen=True)
class ThresholdResult:
    record: InventoryRecord
    level: StockLevel
    available: int
    threshold: int
    # Units to order to get back to max_stock_level (or reorder_quantity)
    suggested_reorder: int = 0


def classify_available(available: int, threshold: int) -> StockLevel:
    if available <= 0:
        return StockLevel.OUT_OF_STOCK
    if available <= threshold:
        return StockLevel.LOW_STOCK
    return StockLevel.IN_STOCK


def threshold_for(record: InventoryRecord, catalog_thresholds: Mapping[str, int | None]) -> int:
    """Catalog threshold, else the record's reorder point, else the default."""
    value = catalog_thresholds.get(record.subject_id)
    if value is None:
        value = record.reorder_point
    if value is None:
        value = tillman_settings.DEFAULT_LOW_STOCK_THRESHOLD
    return int(value)


def suggested_reorder(record: InventoryRecord, level: StockLevel) -> int:
    if level == StockLevel.IN_STOCK:
        return 0
    if record.max_stock_level is not None:
        return max(record.max_stock_level - record.available_quantity, 0)
    return record.reorder_quantity or 0


def classify(records: Iterable[InventoryRecord],
             catalog_thresholds: Mapping[str, int | None] | None = None) -> list[ThresholdResult]:
    """
    Classify each record by its available quantity.

    Args:
        records: InventoryRecords to classify
        catalog_thresholds: {subject_id: low_stock_threshold} from the catalog

    Returns:
        One ThresholdResult per record, in input order
    """
    catalog_thresholds = catalog_thresholds or {}
    results = []
    for record in records:
        threshold = threshold_for(record, catalog_thresholds)
        available = record.available_quantity
        level = classify_available(available, threshold)
        results.append(ThresholdResult(
            record=record,
            level=level,
            available=available,
            threshold=threshold,
            suggested_reorder=suggested_reorder(record, level),
        ))
    return results


class StockThresholds:
    """Threshold evaluation over stored records."""

    @classmethod
    def catalog_thresholds(cls, subject_ids: Iterable[str]) -> dict[str, int | None]:
        infos = get_catalog().get_subjects_info(sorted(set(subject_ids)))
        return {sid: info.low_stock_threshold for sid, info in infos.items()}

    @classmethod
    def evaluate(cls, ctx: OperationContext, location=None,
                 only_alerts: bool = False) -> list[ThresholdResult]:
        """
        Classify the tenant's active records.

        Args:
            location: Restrict to one Location (None = all)
            only_alerts: Drop in-stock results
        """
        qs = InventoryRecord.objects.for_tenant(ctx.tenant_id).active().select_related('location')
        if location is not None:
            qs = qs.at_location(location)
        records = list(qs)

        results = classify(records, cls.catalog_thresholds(r.subject_id for r in records))

        for result in results:
            if result.level == StockLevel.IN_STOCK:
                continue
            logger.warning(
                "stock.threshold.out" if result.level == StockLevel.OUT_OF_STOCK else "stock.threshold.low",
                extra={
                    "subject": result.record.subject_id,
                    "location": result.record.location.code,
                    "available": result.available,
                    "threshold": result.threshold,
                    "suggested_reorder": result.suggested_reorder,
                },
            )

        if only_alerts:
            results = [r for r in results if r.level != StockLevel.IN_STOCK]
        return results
