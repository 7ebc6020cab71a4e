"""
Tests for the sale orchestrator.
"""

from decimal import Decimal

import pytest

from tillman import till
from tillman.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    PaymentMismatchError,
    ValidationError,
)
from tillman.models import (
    InventoryRecord,
    MovementType,
    PaymentKind,
    Sale,
    SaleStatus,
    StockMovement,
)
from tillman.services.sales import next_sale_number
from tillman.tests.helpers import assert_invariants


pytestmark = pytest.mark.django_db


def mug_sale(ctx, quantity=3, **kwargs):
    """Scenario sale: quantity x 10.00 with 2.40 tax."""
    kwargs.setdefault('tax_amount', Decimal('2.40'))
    return till.begin_sale(
        ctx,
        [{'subject_id': 'MUG', 'quantity': quantity, 'unit_price': Decimal('10.00')}],
        **kwargs,
    )


@pytest.fixture
def mugs(stocked):
    return stocked('MUG', 100)


class TestPriceOnly:

    def test_price_has_no_side_effects(self, ctx, mugs):
        priced = till.price([{'subject_id': 'MUG', 'quantity': 3, 'unit_price': '10.00'}], tax_amount='2.40')

        assert priced.total == Decimal('32.40')
        assert not Sale.objects.exists()
        mugs.refresh_from_db()
        assert mugs.quantity == 100

    def test_catalog_price_fills_missing(self, ctx, mug, mugs):
        sale = till.begin_sale(ctx, [{'subject_id': 'MUG', 'quantity': 2}])

        assert sale.total == Decimal('20.00')
        assert sale.lines.get().unit_price == Decimal('10.00')

    def test_unknown_price(self, ctx, stocked):
        stocked('ODD', 5)

        with pytest.raises(ValidationError) as exc:
            till.begin_sale(ctx, [{'subject_id': 'ODD', 'quantity': 1}])

        assert exc.value.code == 'PRICE_REQUIRED'


class TestBeginSale:

    def test_reserves_stock(self, ctx, mugs):
        sale = mug_sale(ctx)

        assert sale.status == SaleStatus.STOCK_RESERVED
        assert sale.subtotal == Decimal('30.00')
        assert sale.total == Decimal('32.40')
        mugs.refresh_from_db()
        assert mugs.quantity == 97
        movement = StockMovement.objects.get(movement_type=MovementType.SALE)
        assert movement.delta == -3
        assert movement.reference == sale.number
        assert_invariants(mugs)

    def test_sale_number_format(self, ctx, mugs):
        first = mug_sale(ctx, 1)
        second = mug_sale(ctx, 1)

        assert first.number.startswith('SALE-')
        assert first.number.endswith('-0001')
        assert second.number.endswith('-0002')

    def test_numbers_per_tenant(self, ctx, other_ctx, mugs):
        mug_sale(ctx, 1)
        till.receive(other_ctx, 'MUG', 5)

        foreign = mug_sale(other_ctx, 1)

        assert foreign.number.endswith('-0001')
        assert next_sale_number('acme').endswith('-0002')

    def test_empty_cart(self, ctx):
        with pytest.raises(ValidationError) as exc:
            till.begin_sale(ctx, [])

        assert exc.value.code == 'EMPTY_CART'

    def test_all_or_nothing(self, ctx, mugs, stocked):
        stocked('BOWL', 1)

        with pytest.raises(InsufficientStockError) as exc:
            till.begin_sale(ctx, [
                {'subject_id': 'MUG', 'quantity': 5, 'unit_price': '10.00'},
                {'subject_id': 'BOWL', 'quantity': 2, 'unit_price': '7.00'},
            ])

        assert exc.value.data['subject'] == 'BOWL'
        assert exc.value.data['location_id'] == ctx.location_id
        assert exc.value.requested == 2
        assert not Sale.objects.exists()
        mugs.refresh_from_db()
        assert mugs.quantity == 100

    def test_no_record_at_location(self, ctx, warehouse, mugs):
        with pytest.raises(NotFoundError):
            mug_sale(ctx, 1, location_id=warehouse.pk)

    def test_repeated_subject_lines(self, ctx, mugs):
        sale = till.begin_sale(ctx, [
            {'subject_id': 'MUG', 'quantity': 2, 'unit_price': '10.00'},
            {'subject_id': 'MUG', 'quantity': 3, 'unit_price': '9.00'},
        ])

        assert sale.lines.count() == 2
        movements = StockMovement.objects.filter(movement_type=MovementType.SALE).order_by('pk')
        assert [(m.delta, m.metadata['line']) for m in movements] == [(-2, 0), (-3, 1)]
        assert all(m.reference == sale.number for m in movements)
        mugs.refresh_from_db()
        assert mugs.quantity == 95
        assert_invariants(mugs)

    def test_repeated_subject_lines_checked_on_total(self, ctx, stocked):
        stocked('MUG', 4)

        with pytest.raises(InsufficientStockError) as exc:
            till.begin_sale(ctx, [
                {'subject_id': 'MUG', 'quantity': 2, 'unit_price': '10.00'},
                {'subject_id': 'MUG', 'quantity': 3, 'unit_price': '10.00'},
            ])

        assert exc.value.requested == 5
        assert not StockMovement.objects.filter(movement_type=MovementType.SALE).exists()

    def test_sequence_past_four_digits(self, ctx, main_store, mugs):
        stem = next_sale_number('acme')[:-4]
        for suffix in ('9999', '10000'):
            Sale.objects.create(
                tenant_id='acme', number=f"{stem}{suffix}", location=main_store,
                status=SaleStatus.ABORTED, subtotal=Decimal('0.00'), total=Decimal('0.00'),
            )

        assert next_sale_number('acme') == f"{stem}10001"
        assert mug_sale(ctx, 1).number == f"{stem}10001"


class TestPayments:

    def test_scenario_exact_payment_completes(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')

        sale = till.complete_sale(ctx, sale.pk)

        assert sale.status == SaleStatus.COMPLETED
        assert sale.completed_at is not None

    def test_scenario_short_payment_blocks(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '30.00')

        with pytest.raises(PaymentMismatchError) as exc:
            till.complete_sale(ctx, sale.pk)

        assert exc.value.data['total'] == Decimal('32.40')
        assert exc.value.data['paid'] == Decimal('30.00')
        sale.refresh_from_db()
        assert sale.status == SaleStatus.STOCK_RESERVED

    def test_within_tolerance(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'card', '32.39', card_last4='4242', card_brand='visa')

        assert till.complete_sale(ctx, sale.pk).status == SaleStatus.COMPLETED

    def test_overpayment_blocks(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.42')

        with pytest.raises(PaymentMismatchError):
            till.collect_payments(ctx, sale.pk)

    def test_split_payments_and_change(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'card', '12.40', card_last4='1111')
        till.add_payment(ctx, sale.pk, 'cash', '20.00', tendered_amount='50.00')

        till.collect_payments(ctx, sale.pk)
        sale = till.complete_sale(ctx, sale.pk)

        assert sale.tendered_amount == Decimal('62.40')
        assert sale.change_amount == Decimal('30.00')

    def test_removed_payment_not_counted(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')
        wrong = till.add_payment(ctx, sale.pk, 'card', '32.40')

        till.remove_payment(ctx, sale.pk, wrong.sequence)

        assert till.complete_sale(ctx, sale.pk).status == SaleStatus.COMPLETED
        assert sale.payments.count() == 2

    def test_sequences_are_ordered(self, ctx, mugs):
        sale = mug_sale(ctx)

        sequences = [till.add_payment(ctx, sale.pk, 'cash', '1.00').sequence for _ in range(3)]

        assert sequences == [1, 2, 3]

    @pytest.mark.parametrize('method, amount, extra, code', [
        ('bitcoin', '1.00', {}, 'INVALID_METHOD'),
        ('cash', '0', {}, 'INVALID_AMOUNT'),
        ('cash', '-5', {}, 'INVALID_AMOUNT'),
        ('cash', '10.00', {'tendered_amount': '5.00'}, 'INVALID_AMOUNT'),
        ('card', '10.00', {'card_last4': '12a4'}, 'INVALID_CARD'),
    ])
    def test_invalid_payment(self, ctx, mugs, method, amount, extra, code):
        sale = mug_sale(ctx)

        with pytest.raises(ValidationError) as exc:
            till.add_payment(ctx, sale.pk, method, amount, **extra)

        assert exc.value.code == code

    def test_no_payments_after_completion(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')
        till.complete_sale(ctx, sale.pk)

        with pytest.raises(InvalidStateError):
            till.add_payment(ctx, sale.pk, 'cash', '1.00')

    def test_unknown_sale(self, ctx):
        with pytest.raises(NotFoundError) as exc:
            till.add_payment(ctx, 424242, 'cash', '1.00')

        assert exc.value.code == 'SALE_NOT_FOUND'

    def test_other_tenant_cannot_see_sale(self, ctx, other_ctx, mugs):
        sale = mug_sale(ctx)

        with pytest.raises(NotFoundError):
            till.get_sale(other_ctx, sale.pk)


class TestAbort:

    def test_abort_returns_stock(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '10.00')

        sale = till.abort_sale(ctx, sale.pk, reason='customer left')

        assert sale.status == SaleStatus.ABORTED
        assert sale.abort_reason == 'customer left'
        assert not sale.payments.active().exists()
        assert_invariants(mugs)
        assert mugs.quantity == 100
        assert StockMovement.objects.filter(
            movement_type=MovementType.RETURN, reason_code='sale-aborted', reference=sale.number,
        ).count() == 1

    def test_one_return_per_line(self, ctx, mugs):
        sale = till.begin_sale(ctx, [
            {'subject_id': 'MUG', 'quantity': 2, 'unit_price': '10.00'},
            {'subject_id': 'MUG', 'quantity': 3, 'unit_price': '9.00'},
        ])

        till.abort_sale(ctx, sale.pk)

        returns = StockMovement.objects.filter(movement_type=MovementType.RETURN).order_by('pk')
        assert [(m.delta, m.metadata['line']) for m in returns] == [(2, 0), (3, 1)]
        assert_invariants(mugs)
        assert mugs.quantity == 100

    def test_abort_after_collection(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')
        till.collect_payments(ctx, sale.pk)

        assert till.abort_sale(ctx, sale.pk).status == SaleStatus.ABORTED

    def test_cannot_abort_completed(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')
        till.complete_sale(ctx, sale.pk)

        with pytest.raises(InvalidStateError):
            till.abort_sale(ctx, sale.pk)

    def test_aborted_is_terminal(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.abort_sale(ctx, sale.pk)

        with pytest.raises(InvalidStateError):
            till.complete_sale(ctx, sale.pk)
        with pytest.raises(InvalidStateError):
            till.abort_sale(ctx, sale.pk)


class TestVoid:

    def test_scenario_void_restores_stock(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')
        till.complete_sale(ctx, sale.pk)

        sale = till.void_sale(ctx, sale.pk, reason='wrong item')

        assert sale.status == SaleStatus.VOIDED
        mugs.refresh_from_db()
        assert mugs.quantity == 100
        ret = StockMovement.objects.get(movement_type=MovementType.RETURN)
        assert ret.delta == 3
        assert ret.reference == sale.number
        assert_invariants(mugs)

    def test_void_appends_negative_refunds(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'card', '12.40', card_last4='4242')
        till.add_payment(ctx, sale.pk, 'cash', '20.00')
        till.complete_sale(ctx, sale.pk)

        till.void_sale(ctx, sale.pk, reason='returned')

        refunds = sale.payments.filter(kind=PaymentKind.REFUND).order_by('sequence')
        assert [r.amount for r in refunds] == [Decimal('-12.40'), Decimal('-20.00')]
        assert [r.sequence for r in refunds] == [3, 4]
        assert refunds[0].card_last4 == '4242'

    def test_void_only_completed(self, ctx, mugs):
        sale = mug_sale(ctx)

        with pytest.raises(InvalidStateError) as exc:
            till.void_sale(ctx, sale.pk, reason='oops')

        assert exc.value.data['current'] == SaleStatus.STOCK_RESERVED

    def test_void_needs_reason(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')
        till.complete_sale(ctx, sale.pk)

        with pytest.raises(ValidationError):
            till.void_sale(ctx, sale.pk, reason='')

    def test_void_twice_rejected(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')
        till.complete_sale(ctx, sale.pk)
        till.void_sale(ctx, sale.pk, reason='once')

        with pytest.raises(InvalidStateError):
            till.void_sale(ctx, sale.pk, reason='twice')

        mugs.refresh_from_db()
        assert mugs.quantity == 100

    def test_void_after_stock_moved_on(self, ctx, mugs):
        """Void restores the sold units even when the record changed since."""
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40')
        till.complete_sale(ctx, sale.pk)
        till.adjust_stock(ctx, 'MUG', -10, reason_code='damaged')

        till.void_sale(ctx, sale.pk, reason='return')

        mugs.refresh_from_db()
        assert mugs.quantity == 90


class TestReceipt:

    def test_receipt_shape(self, ctx, mugs):
        sale = mug_sale(ctx)
        till.add_payment(ctx, sale.pk, 'cash', '32.40', tendered_amount='40.00')
        till.complete_sale(ctx, sale.pk)

        receipt = till.receipt(ctx, sale.pk)

        assert receipt['number'] == sale.number
        assert receipt['status'] == SaleStatus.COMPLETED
        assert receipt['total'] == '32.40'
        assert receipt['lines'][0]['line_total'] == '30.00'
        assert receipt['payments'][0]['change_given'] == '7.60'
        assert receipt['change_amount'] == '7.60'


class TestInvariantAfterSales:

    def test_many_sales_keep_ledger_consistent(self, ctx, mugs):
        for qty in (1, 2, 3, 4):
            sale = mug_sale(ctx, qty, tax_amount=0)
            till.add_payment(ctx, sale.pk, 'cash', Decimal(qty * 10))
            till.complete_sale(ctx, sale.pk)

        record = InventoryRecord.objects.get(subject_id='MUG')
        assert record.quantity == 90
        assert_invariants(record)


class TestOpenSales:

    def test_open_queryset(self, ctx, mugs):
        pending = mug_sale(ctx, 1)
        done = mug_sale(ctx, 1)
        till.add_payment(ctx, done.pk, 'cash', '12.40')
        done = till.complete_sale(ctx, done.pk)

        assert list(Sale.objects.for_tenant('acme').open()) == [pending]
        assert pending.is_open
        assert not done.is_open
