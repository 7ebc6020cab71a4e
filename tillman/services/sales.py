"""
Sale orchestrator — POS checkout as one logical transaction.

    DRAFT -> PRICED                  price_cart() (pure, in memory)
    PRICED -> STOCK_RESERVED         begin_sale(): sale row + every stock
                                     decrement in one transaction
    STOCK_RESERVED -> PAYMENTS_COLLECTED
                                     collect_payments(): payment log must
                                     match the total within tolerance
    PAYMENTS_COLLECTED -> COMPLETED  complete_sale()
    open -> ABORTED                  abort_sale(): compensating returns
    COMPLETED -> VOIDED              void_sale(): compensating returns and
                                     negative refund entries

Every state change locks the sale row first (select_for_update), so two
requests cannot drive the same sale through conflicting transitions.
"""

import logging
from collections.abc import Iterable
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models.functions import Length
from django.utils import timezone

from tillman.adapters.catalog import get_catalog
from tillman.conf import tillman_settings
from tillman.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    PaymentMismatchError,
    ValidationError,
)
from tillman.models.enums import (
    OPEN_SALE_STATUSES,
    MovementType,
    PaymentKind,
    PaymentMethod,
    SaleStatus,
)
from tillman.models.location import Location
from tillman.models.sale import Payment, Sale, SaleLine
from tillman.pricing import ZERO, Cart, CartLine, PricedCart, price_cart, to_money, within_tolerance
from tillman.protocols.context import OperationContext
from tillman.retry import retry_on_conflict
from tillman.services.store import InventoryStore

logger = logging.getLogger('tillman')


def _as_cart_lines(lines: Iterable) -> tuple[CartLine, ...]:
    return tuple(
        line if isinstance(line, CartLine) else CartLine.from_dict(line)
        for line in lines
    )


def _fill_prices(lines: tuple[CartLine, ...]) -> tuple[CartLine, ...]:
    """Default missing unit prices from the catalog."""
    missing = [line.subject_id for line in lines if line.unit_price is None]
    if not missing:
        return lines

    known = get_catalog().get_subjects_info(missing)
    filled = []
    for line in lines:
        info = known.get(line.subject_id)
        if line.unit_price is None and info is not None and info.unit_price is not None:
            line = CartLine(
                subject_id=line.subject_id,
                quantity=line.quantity,
                unit_price=info.unit_price,
                line_discount=line.line_discount,
            )
        filled.append(line)
    return tuple(filled)


def next_sale_number(tenant_id: str, now=None) -> str:
    """SALE-YYYYMMDD-NNNN, sequential per tenant per day."""
    now = now or timezone.now()
    stem = f"{tillman_settings.SALE_NUMBER_PREFIX}-{now:%Y%m%d}-"
    # Suffixes are zero-padded to four digits and grow past that, so the
    # longest number is the highest and ties sort lexically.
    last = (
        Sale.objects.for_tenant(tenant_id)
        .filter(number__startswith=stem)
        .order_by(Length('number').desc(), '-number')
        .values_list('number', flat=True)
        .first()
    )
    sequence = 1
    if last:
        try:
            sequence = int(last.rsplit('-', 1)[1]) + 1
        except (IndexError, ValueError):
            sequence = Sale.objects.for_tenant(tenant_id).filter(number__startswith=stem).count() + 1
    return f"{stem}{sequence:04d}"


class SaleOrchestrator:
    """Drives sales through their state machine."""

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def get(cls, ctx: OperationContext, sale_id: int) -> Sale:
        try:
            return Sale.objects.for_tenant(ctx.tenant_id).get(pk=sale_id)
        except Sale.DoesNotExist:
            raise NotFoundError('SALE_NOT_FOUND', sale_id=sale_id) from None

    @classmethod
    def _lock(cls, ctx: OperationContext, sale_id: int) -> Sale:
        try:
            return Sale.objects.select_for_update().get(pk=sale_id, tenant_id=ctx.tenant_id)
        except Sale.DoesNotExist:
            raise NotFoundError('SALE_NOT_FOUND', sale_id=sale_id) from None

    @staticmethod
    def _require_status(sale: Sale, *allowed: SaleStatus) -> None:
        if sale.status not in allowed:
            raise InvalidStateError(
                sale=sale.number,
                current=sale.status,
                expected=[str(s) for s in allowed],
            )

    # ══════════════════════════════════════════════════════════════
    # DRAFT -> PRICED -> STOCK_RESERVED
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def price(cls, lines: Iterable, order_discount=ZERO, tax_amount=ZERO) -> PricedCart:
        """
        Price a cart without touching storage.

        Abandoning the result has no side effects.
        """
        cart = Cart(
            lines=_fill_prices(_as_cart_lines(lines)),
            order_discount=order_discount,
            tax_amount=tax_amount,
        )
        return price_cart(cart)

    @classmethod
    def begin_sale(cls, ctx: OperationContext, lines: Iterable,
                   order_discount=ZERO, tax_amount=ZERO,
                   location_id: int | None = None, notes: str = '') -> Sale:
        """
        Price the cart and decrement stock for every line, all-or-nothing.

        Returns:
            Sale in STOCK_RESERVED

        Raises:
            ValidationError: empty cart, negative total, bad lines
            NotFoundError: unknown location, or no record for a subject
            InsufficientStockError: any line cannot be satisfied
                (no line is decremented in that case)
        """
        priced = cls.price(lines, order_discount, tax_amount)
        location = InventoryStore.resolve_location(ctx, location_id)
        return cls._reserve(ctx, location, priced, notes)

    @classmethod
    @retry_on_conflict
    def _reserve(cls, ctx: OperationContext, location: Location,
                 priced: PricedCart, notes: str) -> Sale:
        with transaction.atomic():
            sale = cls._create_sale(ctx, location, priced, notes)

            quantities = priced.quantities
            locked = InventoryStore.lock_many(
                ctx, keys=[(subject, location) for subject in quantities],
            )
            # Availability is judged on the subject total before any line moves
            for subject_id in sorted(quantities):
                qty = quantities[subject_id]
                record = locked[(subject_id, location.pk)]
                if record.available_quantity < qty:
                    raise InsufficientStockError(
                        subject=subject_id,
                        location_id=location.pk,
                        available=record.available_quantity,
                        requested=qty,
                    )

            for position, line in enumerate(priced.lines):
                InventoryStore.apply_delta(
                    locked[(line.subject_id, location.pk)], -line.quantity,
                    movement_type=MovementType.SALE,
                    reason_code='sale',
                    reason_text=f"Sale {sale.number}",
                    reference=sale.number,
                    actor=ctx.actor,
                    metadata={'sale_id': sale.pk, 'line': position},
                )

        logger.info(
            "sale.stock_reserved",
            extra={
                "sale": sale.number,
                "location": location.code,
                "total": str(sale.total),
                "lines": len(priced.lines),
            },
        )
        return sale

    @classmethod
    def _create_sale(cls, ctx: OperationContext, location: Location,
                     priced: PricedCart, notes: str) -> Sale:
        try:
            with transaction.atomic():
                sale = Sale.objects.create(
                    tenant_id=ctx.tenant_id,
                    number=next_sale_number(ctx.tenant_id),
                    location=location,
                    status=SaleStatus.STOCK_RESERVED,
                    actor=ctx.actor,
                    subtotal=priced.subtotal,
                    discount_amount=priced.order_discount,
                    tax_amount=priced.tax_amount,
                    total=priced.total,
                    notes=notes,
                )
        except IntegrityError as exc:
            # Another checkout took the same number
            raise ConcurrentModificationError(tenant=ctx.tenant_id) from exc

        SaleLine.objects.bulk_create([
            SaleLine(
                sale=sale,
                position=index,
                subject_id=line.subject_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_discount=line.line_discount,
                line_total=line.line_total,
            )
            for index, line in enumerate(priced.lines)
        ])
        return sale

    # ══════════════════════════════════════════════════════════════
    # PAYMENT LOG
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def add_payment(cls, ctx: OperationContext, sale_id: int, method: str, amount,
                    tendered_amount=None, card_last4: str = '', card_brand: str = '',
                    check_number: str = '', reference: str = '') -> Payment:
        """
        Append a payment entry. Totals are only checked at collection.

        Raises:
            ValidationError('INVALID_METHOD' | 'INVALID_AMOUNT')
            InvalidStateError: sale is not in STOCK_RESERVED
        """
        if method not in PaymentMethod.values:
            raise ValidationError('INVALID_METHOD', method=method)
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError('INVALID_AMOUNT', amount=amount)
        if tendered_amount is not None:
            tendered_amount = to_money(tendered_amount, 'tendered_amount')
            if tendered_amount < amount:
                raise ValidationError('INVALID_AMOUNT', amount=amount, tendered=tendered_amount)
        if card_last4 and not (len(card_last4) == 4 and card_last4.isdigit()):
            raise ValidationError('INVALID_CARD', card_last4=card_last4)

        with transaction.atomic():
            sale = cls._lock(ctx, sale_id)
            cls._require_status(sale, SaleStatus.STOCK_RESERVED)

            last = sale.payments.order_by('-sequence').values_list('sequence', flat=True).first()
            payment = Payment.objects.create(
                sale=sale,
                sequence=(last or 0) + 1,
                kind=PaymentKind.PAYMENT,
                method=method,
                amount=amount,
                tendered_amount=tendered_amount,
                card_last4=card_last4,
                card_brand=card_brand,
                check_number=check_number,
                reference=reference,
            )

        logger.info(
            "sale.payment.added",
            extra={
                "sale": sale.number,
                "sequence": payment.sequence,
                "method": method,
                "amount": str(amount),
            },
        )
        return payment

    @classmethod
    def remove_payment(cls, ctx: OperationContext, sale_id: int, sequence: int) -> Payment:
        """Mark a payment entry removed (the entry itself stays in the log)."""
        with transaction.atomic():
            sale = cls._lock(ctx, sale_id)
            cls._require_status(sale, SaleStatus.STOCK_RESERVED)
            try:
                payment = sale.payments.active().get(sequence=sequence, kind=PaymentKind.PAYMENT)
            except Payment.DoesNotExist:
                raise NotFoundError(
                    'PAYMENT_NOT_FOUND', sale=sale.number, sequence=sequence,
                ) from None
            payment.removed_at = timezone.now()
            payment.save(update_fields=['removed_at'])

        logger.info(
            "sale.payment.removed",
            extra={"sale": sale.number, "sequence": sequence},
        )
        return payment

    # ══════════════════════════════════════════════════════════════
    # STOCK_RESERVED -> PAYMENTS_COLLECTED -> COMPLETED
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def _collect(cls, sale: Sale) -> Sale:
        paid = sale.paid_amount
        tolerance = to_money(tillman_settings.PAYMENT_TOLERANCE, 'tolerance')
        if not within_tolerance(paid, sale.total, tolerance):
            raise PaymentMismatchError(
                sale=sale.number,
                total=sale.total,
                paid=paid,
                difference=paid - sale.total,
            )
        sale.status = SaleStatus.PAYMENTS_COLLECTED
        sale.save(update_fields=['status', 'updated_at'])
        return sale

    @classmethod
    def collect_payments(cls, ctx: OperationContext, sale_id: int) -> Sale:
        """
        STOCK_RESERVED -> PAYMENTS_COLLECTED.

        Raises:
            PaymentMismatchError: |sum(payments) - total| > PAYMENT_TOLERANCE
        """
        with transaction.atomic():
            sale = cls._lock(ctx, sale_id)
            cls._require_status(sale, SaleStatus.STOCK_RESERVED)
            cls._collect(sale)

        logger.info(
            "sale.payments_collected",
            extra={"sale": sale.number, "total": str(sale.total)},
        )
        return sale

    @classmethod
    def complete_sale(cls, ctx: OperationContext, sale_id: int) -> Sale:
        """
        Final commit. Collects payments first when still in STOCK_RESERVED.

        After this the sale, its lines and its movements are immutable;
        only void_sale() may follow.
        """
        with transaction.atomic():
            sale = cls._lock(ctx, sale_id)
            cls._require_status(sale, SaleStatus.STOCK_RESERVED, SaleStatus.PAYMENTS_COLLECTED)
            if sale.status == SaleStatus.STOCK_RESERVED:
                cls._collect(sale)

            payments = list(sale.payments.active().filter(kind=PaymentKind.PAYMENT))
            sale.tendered_amount = sum(
                (p.tendered_amount if p.tendered_amount is not None else p.amount for p in payments),
                ZERO,
            )
            sale.change_amount = sum((p.change_given for p in payments), ZERO)
            sale.status = SaleStatus.COMPLETED
            sale.completed_at = timezone.now()
            sale.save(update_fields=[
                'status', 'completed_at', 'tendered_amount', 'change_amount', 'updated_at',
            ])

        logger.info(
            "sale.completed",
            extra={
                "sale": sale.number,
                "total": str(sale.total),
                "payments": len(payments),
                "change": str(sale.change_amount),
            },
        )
        return sale

    # ══════════════════════════════════════════════════════════════
    # COMPENSATION
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def _return_stock(cls, ctx: OperationContext, sale: Sale, reason_code: str, reason_text: str) -> None:
        """Equal-and-opposite RETURN movement for every line of the sale."""
        lines = list(sale.lines.order_by('position').values_list('position', 'subject_id', 'quantity'))

        location = sale.location
        locked = InventoryStore.lock_many(
            ctx, keys=[(subject_id, location) for _, subject_id, _ in lines],
        )
        for position, subject_id, qty in lines:
            InventoryStore.apply_delta(
                locked[(subject_id, location.pk)], qty,
                movement_type=MovementType.RETURN,
                reason_code=reason_code,
                reason_text=reason_text,
                reference=sale.number,
                actor=ctx.actor,
                metadata={'sale_id': sale.pk, 'line': position},
            )

    @classmethod
    @retry_on_conflict
    def abort_sale(cls, ctx: OperationContext, sale_id: int, reason: str = 'aborted') -> Sale:
        """
        Any open state -> ABORTED.

        Reverses the stock decrements with RETURN movements and discards
        the payments collected so far. Never a silent no-op once stock
        has moved.
        """
        with transaction.atomic():
            sale = cls._lock(ctx, sale_id)
            cls._require_status(sale, *OPEN_SALE_STATUSES)

            if sale.status in (SaleStatus.STOCK_RESERVED, SaleStatus.PAYMENTS_COLLECTED):
                cls._return_stock(ctx, sale, 'sale-aborted', f"Sale {sale.number} aborted")

            now = timezone.now()
            sale.payments.active().update(removed_at=now)
            sale.status = SaleStatus.ABORTED
            sale.aborted_at = now
            sale.abort_reason = reason or ''
            sale.save(update_fields=['status', 'aborted_at', 'abort_reason', 'updated_at'])

        logger.info(
            "sale.aborted",
            extra={"sale": sale.number, "reason": reason},
        )
        return sale

    @classmethod
    @retry_on_conflict
    def void_sale(cls, ctx: OperationContext, sale_id: int, reason: str) -> Sale:
        """
        COMPLETED -> VOIDED.

        Restores every touched record with RETURN movements referencing the
        sale number and appends one negative REFUND entry per payment.
        """
        reason = (reason or '').strip()
        if not reason:
            raise ValidationError('REASON_REQUIRED', sale_id=sale_id)

        with transaction.atomic():
            sale = cls._lock(ctx, sale_id)
            cls._require_status(sale, SaleStatus.COMPLETED)

            cls._return_stock(ctx, sale, 'void', f"Void of sale {sale.number}: {reason}")

            payments = list(sale.payments.active().filter(kind=PaymentKind.PAYMENT))
            sequence = sale.payments.order_by('-sequence').values_list('sequence', flat=True).first() or 0
            refunds = []
            for payment in payments:
                sequence += 1
                refunds.append(Payment(
                    sale=sale,
                    sequence=sequence,
                    kind=PaymentKind.REFUND,
                    method=payment.method,
                    amount=-payment.amount,
                    card_last4=payment.card_last4,
                    card_brand=payment.card_brand,
                    reference=f"refund:{payment.sequence}",
                ))
            Payment.objects.bulk_create(refunds)

            sale.status = SaleStatus.VOIDED
            sale.voided_at = timezone.now()
            sale.void_reason = reason
            sale.save(update_fields=['status', 'voided_at', 'void_reason', 'updated_at'])

        logger.info(
            "sale.voided",
            extra={
                "sale": sale.number,
                "reason": reason,
                "refunded": str(sum((p.amount for p in payments), Decimal('0.00'))),
            },
        )
        return sale

    # ══════════════════════════════════════════════════════════════
    # RENDERING
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def receipt(cls, sale: Sale) -> dict:
        """Plain-data view of a sale for receipt printers and APIs."""
        return {
            'number': sale.number,
            'status': sale.status,
            'location': sale.location.name,
            'sales_person': sale.actor,
            'created_at': sale.created_at.isoformat(),
            'completed_at': sale.completed_at.isoformat() if sale.completed_at else None,
            'lines': [
                {
                    'subject_id': line.subject_id,
                    'quantity': line.quantity,
                    'unit_price': str(line.unit_price),
                    'line_discount': str(line.line_discount),
                    'line_total': str(line.line_total),
                }
                for line in sale.lines.all()
            ],
            'subtotal': str(sale.subtotal),
            'discount_amount': str(sale.discount_amount),
            'tax_amount': str(sale.tax_amount),
            'total': str(sale.total),
            'payments': [
                {
                    'sequence': p.sequence,
                    'kind': p.kind,
                    'method': p.method,
                    'amount': str(p.amount),
                    'card_last4': p.card_last4 or None,
                    'change_given': str(p.change_given),
                }
                for p in sale.payments.active()
            ],
            'tendered_amount': str(sale.tendered_amount) if sale.tendered_amount is not None else None,
            'change_amount': str(sale.change_amount) if sale.change_amount is not None else None,
        }
