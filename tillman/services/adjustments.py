"""
Stock adjustments — single-record mutations (adjust, receive, count, reserve).

All methods validate before writing, then lock the record and funnel
the change through InventoryStore.apply_delta under transaction.atomic().
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F

from tillman.exceptions import ValidationError
from tillman.models.enums import MovementType
from tillman.models.record import InventoryRecord
from tillman.protocols.context import OperationContext
from tillman.retry import retry_on_conflict
from tillman.services.store import InventoryStore

logger = logging.getLogger('tillman')

# Reason codes that imply a more specific movement type
REASON_MOVEMENT_TYPES = {
    'damage': MovementType.DAMAGE,
    'damaged': MovementType.DAMAGE,
    'return': MovementType.RETURN,
    'returned': MovementType.RETURN,
    'expired': MovementType.EXPIRED,
}

ADJUSTABLE_TYPES = (
    MovementType.ADJUSTMENT,
    MovementType.DAMAGE,
    MovementType.RETURN,
    MovementType.EXPIRED,
)


def movement_type_for_reason(reason_code: str) -> MovementType:
    """Ledger type implied by a reason code (default: adjustment)."""
    return REASON_MOVEMENT_TYPES.get(reason_code.strip().lower(), MovementType.ADJUSTMENT)


def _require_reason(reason_code: str | None) -> str:
    reason = (reason_code or '').strip()
    if not reason:
        raise ValidationError('REASON_REQUIRED')
    return reason


def _require_positive(quantity, field: str = 'quantity') -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError('INVALID_QUANTITY', **{field: quantity})
    return quantity


class StockAdjustments:
    """Single-record stock mutations."""

    @classmethod
    @retry_on_conflict
    def adjust(cls, ctx: OperationContext, subject_id: str, delta: int,
               reason_code: str, location_id: int | None = None,
               reason_text: str = '', reference: str = '',
               movement_type: MovementType | None = None) -> InventoryRecord:
        """
        Apply a signed delta to one record.

        A positive delta may create the record (first stock at a location);
        a negative delta requires it to exist.

        Raises:
            ValidationError('REASON_REQUIRED' | 'INVALID_DELTA')
            NotFoundError('RECORD_NOT_FOUND'): negative delta, no record
            InsufficientStockError: available would become negative

        Concurrency:
            - Runs under transaction.atomic()
            - Locks the record, checks availability after the lock
        """
        reason = _require_reason(reason_code)
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError('INVALID_DELTA', delta=delta)
        if movement_type is None:
            movement_type = movement_type_for_reason(reason)
        elif movement_type not in ADJUSTABLE_TYPES:
            raise ValidationError('INVALID_DELTA', movement_type=movement_type)

        location = InventoryStore.resolve_location(ctx, location_id)

        with transaction.atomic():
            if delta > 0:
                record = InventoryStore.lock_or_create(ctx, subject_id, location)
            else:
                record = InventoryStore.lock(ctx, subject_id, location)

            record, movement = InventoryStore.apply_delta(
                record, delta,
                movement_type=movement_type,
                reason_code=reason,
                reason_text=reason_text,
                reference=reference,
                actor=ctx.actor,
            )

        logger.info(
            "stock.adjust",
            extra={
                "subject": subject_id,
                "location": location.code,
                "delta": delta,
                "type": movement_type,
                "reason": reason,
                "movement_id": movement.pk,
            },
        )
        return record

    @classmethod
    @retry_on_conflict
    def receive(cls, ctx: OperationContext, subject_id: str, quantity: int,
                location_id: int | None = None, reference: str = '',
                unit_cost: Decimal | None = None,
                reason_code: str = 'purchase') -> InventoryRecord:
        """
        Purchase receipt.

        Creates the record on first receipt at a location and reactivates
        a deactivated one. `unit_cost` updates the location cost price.
        """
        _require_positive(quantity)
        reason = _require_reason(reason_code)
        location = InventoryStore.resolve_location(ctx, location_id)

        with transaction.atomic():
            record = InventoryStore.lock_or_create(ctx, subject_id, location)
            record, movement = InventoryStore.apply_delta(
                record, quantity,
                movement_type=MovementType.PURCHASE_RECEIPT,
                reason_code=reason,
                reference=reference,
                actor=ctx.actor,
            )
            if unit_cost is not None:
                InventoryRecord.objects.filter(pk=record.pk).update(unit_cost=unit_cost)
                record.unit_cost = unit_cost

        logger.info(
            "stock.receive",
            extra={
                "subject": subject_id,
                "location": location.code,
                "qty": quantity,
                "reference": reference,
                "movement_id": movement.pk,
            },
        )
        return record

    @classmethod
    @retry_on_conflict
    def count(cls, ctx: OperationContext, subject_id: str, counted_quantity: int,
              reason_code: str = 'count', location_id: int | None = None,
              reason_text: str = '') -> InventoryRecord:
        """
        Reconciliation count: set quantity to what is physically there.

        Writes one adjustment movement tagged is_correction (delta may be 0,
        the count itself is audit-worthy) and stamps last_counted_at.
        """
        reason = _require_reason(reason_code)
        if isinstance(counted_quantity, bool) or not isinstance(counted_quantity, int) or counted_quantity < 0:
            raise ValidationError('INVALID_QUANTITY', counted=counted_quantity)
        location = InventoryStore.resolve_location(ctx, location_id)

        with transaction.atomic():
            record = InventoryStore.lock_or_create(ctx, subject_id, location)
            delta = counted_quantity - record.quantity
            record, movement = InventoryStore.apply_delta(
                record, delta,
                movement_type=MovementType.ADJUSTMENT,
                reason_code=reason,
                reason_text=reason_text,
                actor=ctx.actor,
                correction=True,
            )

        logger.info(
            "stock.count",
            extra={
                "subject": subject_id,
                "location": location.code,
                "counted": counted_quantity,
                "delta": delta,
                "movement_id": movement.pk,
            },
        )
        return record

    @classmethod
    @retry_on_conflict
    def reserve(cls, ctx: OperationContext, subject_id: str, quantity: int,
                location_id: int | None = None) -> InventoryRecord:
        """Earmark available quantity (on-hand unchanged, no movement)."""
        _require_positive(quantity)
        location = InventoryStore.resolve_location(ctx, location_id)

        with transaction.atomic():
            record = InventoryStore.lock(ctx, subject_id, location)
            record, _ = InventoryStore.apply_delta(record, 0, reserved_delta=quantity)

        logger.info(
            "stock.reserve",
            extra={"subject": subject_id, "location": location.code, "qty": quantity},
        )
        return record

    @classmethod
    @retry_on_conflict
    def release_reservation(cls, ctx: OperationContext, subject_id: str, quantity: int,
                            location_id: int | None = None) -> InventoryRecord:
        """Return reserved quantity to available."""
        _require_positive(quantity)
        location = InventoryStore.resolve_location(ctx, location_id)

        with transaction.atomic():
            record = InventoryStore.lock(ctx, subject_id, location)
            record, _ = InventoryStore.apply_delta(record, 0, reserved_delta=-quantity)

        logger.info(
            "stock.release",
            extra={"subject": subject_id, "location": location.code, "qty": quantity},
        )
        return record

    @classmethod
    def deactivate(cls, ctx: OperationContext, subject_id: str,
                   location_id: int | None = None) -> InventoryRecord:
        """
        Soft-deactivate an empty record.

        Records with history are never deleted; a later receipt
        reactivates them.
        """
        location = InventoryStore.resolve_location(ctx, location_id)

        with transaction.atomic():
            record = InventoryStore.lock(ctx, subject_id, location)
            if record.quantity != 0 or record.reserved_quantity != 0:
                raise ValidationError(
                    'RECORD_NOT_EMPTY',
                    subject=subject_id,
                    location=location.code,
                    quantity=record.quantity,
                )
            InventoryRecord.objects.filter(pk=record.pk).update(
                is_active=False, version=F('version') + 1,
            )
            record.refresh_from_db()

        logger.info(
            "stock.record.deactivated",
            extra={"subject": subject_id, "location": location.code},
        )
        return record
