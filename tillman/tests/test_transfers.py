"""
Tests for stock transfers.
"""

import pytest

from tillman import till
from tillman.exceptions import InsufficientStockError, InvalidTransferError, NotFoundError
from tillman.models import InventoryRecord, MovementType, StockMovement
from tillman.services.transfers import TransferLine
from tillman.tests.helpers import assert_invariants


pytestmark = pytest.mark.django_db


class TestTransfer:

    def test_scenario_transfer(self, ctx, main_store, warehouse, stocked):
        """20 from A (150) to B (0): A=130, B=20, two linked movements."""
        stocked('SKU-1', 150)

        result = till.transfer_stock(ctx, 'SKU-1', main_store.pk, warehouse.pk, 20)

        assert result.from_record.quantity == 130
        assert result.to_record.quantity == 20
        legs = StockMovement.objects.with_reference(result.reference)
        assert sorted(legs.values_list('movement_type', 'delta')) == [
            (MovementType.TRANSFER_IN, 20),
            (MovementType.TRANSFER_OUT, -20),
        ]
        assert result.reference.startswith('TRF-')
        assert_invariants(result.from_record)
        assert_invariants(result.to_record)

    def test_same_location_rejected(self, ctx, main_store, stocked):
        stocked('SKU-1', 10)

        with pytest.raises(InvalidTransferError) as exc:
            till.transfer_stock(ctx, 'SKU-1', main_store.pk, main_store.pk, 1)

        assert exc.value.code == 'SAME_LOCATION'

    @pytest.mark.parametrize('from_id, to_id', [(None, 'main'), ('main', None)])
    def test_same_location_through_context_default(self, ctx, main_store, stocked, from_id, to_id):
        record = stocked('SKU-1', 10)
        ids = {None: None, 'main': main_store.pk}

        with pytest.raises(InvalidTransferError) as exc:
            till.transfer_stock(ctx, 'SKU-1', ids[from_id], ids[to_id], 4)

        assert exc.value.code == 'SAME_LOCATION'
        assert exc.value.data['location_id'] == main_store.pk
        assert not StockMovement.objects.filter(
            movement_type__in=[MovementType.TRANSFER_OUT, MovementType.TRANSFER_IN],
        ).exists()
        record.refresh_from_db()
        assert record.quantity == 10

    @pytest.mark.parametrize('quantity', [0, -5])
    def test_non_positive_quantity_rejected(self, ctx, main_store, warehouse, stocked, quantity):
        stocked('SKU-1', 10)

        with pytest.raises(InvalidTransferError) as exc:
            till.transfer_stock(ctx, 'SKU-1', main_store.pk, warehouse.pk, quantity)

        assert exc.value.code == 'INVALID_QUANTITY'

    def test_insufficient_stock_leaves_nothing(self, ctx, main_store, warehouse, stocked):
        stocked('SKU-1', 5)

        with pytest.raises(InsufficientStockError) as exc:
            till.transfer_stock(ctx, 'SKU-1', main_store.pk, warehouse.pk, 6)

        assert exc.value.available == 5
        assert exc.value.data['location_id'] == main_store.pk
        assert not InventoryRecord.objects.filter(location=warehouse).exists()
        assert StockMovement.objects.count() == 1

    def test_reserved_not_transferable(self, ctx, main_store, warehouse, stocked):
        stocked('SKU-1', 5)
        till.reserve(ctx, 'SKU-1', 3)

        with pytest.raises(InsufficientStockError):
            till.transfer_stock(ctx, 'SKU-1', main_store.pk, warehouse.pk, 3)

    def test_missing_source_record(self, ctx, main_store, warehouse):
        with pytest.raises(NotFoundError):
            till.transfer_stock(ctx, 'SKU-1', main_store.pk, warehouse.pk, 1)

    def test_transfer_back(self, ctx, main_store, warehouse, stocked):
        stocked('SKU-1', 10)
        till.transfer_stock(ctx, 'SKU-1', main_store.pk, warehouse.pk, 4)

        result = till.transfer_stock(ctx, 'SKU-1', warehouse.pk, main_store.pk, 4)

        assert result.from_record.quantity == 0
        assert result.to_record.quantity == 10


class TestTransferMany:

    def test_all_lines_share_reference(self, ctx, main_store, warehouse, stocked):
        stocked('A', 10)
        stocked('B', 10)

        result = till.transfer_many(ctx, [('A', 3), ('B', 4), ('A', 1)], main_store.pk, warehouse.pk)

        assert result.to_records['A'].quantity == 4
        assert result.to_records['B'].quantity == 4
        assert StockMovement.objects.with_reference(result.reference).count() == 4

    def test_one_short_line_aborts_all(self, ctx, main_store, warehouse, stocked):
        stocked('A', 10)
        stocked('B', 1)

        with pytest.raises(InsufficientStockError):
            till.transfer_many(
                ctx,
                [TransferLine('A', 3), TransferLine('B', 2)],
                main_store.pk, warehouse.pk,
            )

        assert InventoryRecord.objects.get(subject_id='A', location=main_store).quantity == 10
        assert not StockMovement.objects.filter(movement_type=MovementType.TRANSFER_OUT).exists()
        assert not StockMovement.objects.filter(movement_type=MovementType.TRANSFER_IN).exists()
