"""
Tests for threshold classification and the inventory queries built on it.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from tillman import till
from tillman.exceptions import ValidationError
from tillman.models import InventoryRecord, Location, MovementType
from tillman.protocols import SubjectInfo
from tillman.services.thresholds import StockLevel, classify, classify_available


class TestClassifyPure:
    """classify() only looks at the objects it is given."""

    @pytest.mark.parametrize('available, level', [
        (0, StockLevel.OUT_OF_STOCK),
        (1, StockLevel.LOW_STOCK),
        (5, StockLevel.LOW_STOCK),
        (6, StockLevel.IN_STOCK),
    ])
    def test_boundaries(self, available, level):
        assert classify_available(available, threshold=5) == level

    def test_threshold_precedence(self, settings):
        settings.TILLMAN = {**settings.TILLMAN, 'DEFAULT_LOW_STOCK_THRESHOLD': 3}
        from_catalog = InventoryRecord(subject_id='A', quantity=8, reorder_point=20)
        from_record = InventoryRecord(subject_id='B', quantity=8, reorder_point=20)
        from_default = InventoryRecord(subject_id='C', quantity=8)

        results = classify([from_catalog, from_record, from_default], {'A': 10, 'B': None})

        assert [r.threshold for r in results] == [10, 20, 3]
        assert [r.level for r in results] == [
            StockLevel.LOW_STOCK, StockLevel.LOW_STOCK, StockLevel.IN_STOCK,
        ]

    def test_reserved_reduces_available(self):
        record = InventoryRecord(subject_id='A', quantity=4, reserved_quantity=4)

        assert classify([record])[0].level == StockLevel.OUT_OF_STOCK

    def test_reorder_suggestion(self):
        to_max = InventoryRecord(subject_id='A', quantity=2, reorder_point=5, max_stock_level=30)
        fixed = InventoryRecord(subject_id='B', quantity=2, reorder_point=5, reorder_quantity=12)
        healthy = InventoryRecord(subject_id='C', quantity=50, reorder_point=5, reorder_quantity=12)

        assert [r.suggested_reorder for r in classify([to_max, fixed, healthy])] == [28, 12, 0]


@pytest.mark.django_db
class TestEvaluate:

    def test_catalog_threshold_used(self, ctx, mug, stocked):
        stocked('MUG', 5)
        stocked('PLATE', 5)

        levels = {r.record.subject_id: r.level for r in till.evaluate_thresholds(ctx)}

        # MUG threshold 5 (catalog), PLATE falls back to 10
        assert levels == {'MUG': StockLevel.LOW_STOCK, 'PLATE': StockLevel.LOW_STOCK}

    def test_only_alerts(self, ctx, catalog, stocked):
        catalog.register(SubjectInfo('PLENTY', 'Plenty', low_stock_threshold=1))
        stocked('PLENTY', 50)
        stocked('GONE', 1)
        till.adjust_stock(ctx, 'GONE', -1, reason_code='count')

        alerts = till.evaluate_thresholds(ctx, only_alerts=True)

        assert [(r.record.subject_id, r.level) for r in alerts] == [('GONE', StockLevel.OUT_OF_STOCK)]

    def test_location_scope(self, ctx, warehouse, stocked):
        stocked('A', 1)
        stocked('A', 1, location=warehouse)

        results = till.evaluate_thresholds(ctx, location_id=warehouse.pk)

        assert [r.record.location_id for r in results] == [warehouse.pk]


@pytest.mark.django_db
class TestInventoryQueries:

    def test_level_filters(self, ctx, stocked):
        stocked('LOW', 3)
        stocked('OK', 50)
        stocked('OUT', 1)
        till.adjust_stock(ctx, 'OUT', -1, reason_code='count')

        assert [r.subject_id for r in till.get_inventory(ctx, level='low')] == ['LOW']
        assert [r.subject_id for r in till.get_inventory(ctx, level='out')] == ['OUT']

    def test_bad_level(self, ctx):
        with pytest.raises(ValidationError):
            till.get_inventory(ctx, level='medium')

    def test_exclude_empty(self, ctx, stocked):
        stocked('A', 1)
        stocked('B', 1)
        till.adjust_stock(ctx, 'B', -1, reason_code='count')

        assert [r.subject_id for r in till.get_inventory(ctx, include_empty=False)] == ['A']

    def test_filters_by_subject_and_location(self, ctx, warehouse, stocked):
        stocked('A', 1)
        stocked('A', 2, location=warehouse)
        stocked('B', 3, location=warehouse)

        records = till.get_inventory(ctx, subject_id='A', location_id=warehouse.pk)

        assert [(r.subject_id, r.quantity) for r in records] == [('A', 2)]

    def test_tenant_isolation(self, ctx, other_ctx, stocked):
        stocked('A', 1)
        till.receive(other_ctx, 'B', 1)

        assert [r.subject_id for r in till.get_inventory(ctx)] == ['A']
        assert [r.subject_id for r in till.get_inventory(other_ctx)] == ['B']

    def test_summary(self, ctx, warehouse, stocked):
        till.receive(ctx, 'A', 4, unit_cost=Decimal('2.50'))
        till.receive(ctx, 'B', 100, unit_cost=Decimal('1.00'))
        stocked('C', 1)
        till.adjust_stock(ctx, 'C', -1, reason_code='count')

        summary = till.inventory_summary(ctx, recent=2)

        assert summary['record_count'] == 3
        assert summary['location_count'] == 2
        assert summary['low_stock_count'] == 1
        assert summary['out_of_stock_count'] == 1
        assert summary['total_value'] == Decimal('110.00')
        assert len(summary['recent_movements']) == 2


@pytest.mark.django_db
class TestMovementQueries:

    def test_newest_first_with_paging(self, ctx, stocked):
        record = stocked('A', 10)
        for delta in (-1, -2, -3):
            till.adjust_stock(ctx, 'A', delta, reason_code='count')

        page = till.get_movements(ctx, record_id=record.pk, limit=2, offset=1)

        assert [m.delta for m in page] == [-2, -1]

    def test_filter_by_type_and_reference(self, ctx, main_store, warehouse, stocked):
        stocked('A', 10)
        result = till.transfer_stock(ctx, 'A', main_store.pk, warehouse.pk, 2)

        by_reference = till.get_movements(ctx, reference=result.reference)
        outs = till.get_movements(ctx, movement_type=MovementType.TRANSFER_OUT)
        at_warehouse = till.get_movements(ctx, location_id=warehouse.pk)

        assert len(by_reference) == 2
        assert [m.delta for m in outs] == [-2]
        assert [m.movement_type for m in at_warehouse] == [MovementType.TRANSFER_IN]

    def test_date_range(self, ctx, stocked):
        stocked('A', 10)
        now = timezone.now()

        assert len(till.get_movements(ctx, since=now - timedelta(minutes=5))) == 1
        assert till.get_movements(ctx, until=now - timedelta(minutes=5)) == []

    def test_subject_filter_and_tenant_scope(self, ctx, other_ctx, stocked):
        stocked('A', 1)
        stocked('B', 1)
        till.receive(other_ctx, 'A', 1)

        movements = till.get_movements(ctx, subject_id='A')

        assert len(movements) == 1
        assert movements[0].tenant_id == 'acme'

    def test_location_model_scoping(self, ctx, other_ctx):
        assert Location.objects.for_tenant('acme').count() == 1
