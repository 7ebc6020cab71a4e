"""
Inventory record store — lookup, locking and the apply_delta primitive.

Every change to quantity or reserved quantity goes through
InventoryStore.apply_delta, so the invariant

    quantity == reserved_quantity + available_quantity, available >= 0

and the "one movement per quantity change" rule live in one place.
"""

import logging
from collections.abc import Iterable

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from tillman.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from tillman.models.location import Location
from tillman.models.movement import StockMovement
from tillman.models.record import InventoryRecord
from tillman.protocols.context import OperationContext
from tillman.services.ledger import StockLedger

logger = logging.getLogger('tillman')


class InventoryStore:
    """Single writer of InventoryRecord rows."""

    # ══════════════════════════════════════════════════════════════
    # LOOKUP
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def resolve_location(cls, ctx: OperationContext, location_id: int | None = None) -> Location:
        """
        Location for a call: explicit id, else ctx.location_id,
        else the tenant's default location.
        """
        pk = location_id if location_id is not None else ctx.location_id
        qs = Location.objects.for_tenant(ctx.tenant_id)
        try:
            if pk is not None:
                return qs.get(pk=pk)
            return qs.get(is_default=True)
        except Location.DoesNotExist:
            raise NotFoundError(
                'LOCATION_NOT_FOUND', tenant=ctx.tenant_id, location_id=pk,
            ) from None
        except Location.MultipleObjectsReturned:
            return qs.filter(is_default=True).order_by('pk').first()

    @classmethod
    def get(cls, ctx: OperationContext, subject_id: str, location: Location) -> InventoryRecord:
        """Unlocked read."""
        try:
            return InventoryRecord.objects.for_tenant(ctx.tenant_id).get(
                subject_id=subject_id, location=location,
            )
        except InventoryRecord.DoesNotExist:
            raise NotFoundError(
                'RECORD_NOT_FOUND', subject=subject_id, location=location.code,
            ) from None

    # ══════════════════════════════════════════════════════════════
    # LOCKING (call inside transaction.atomic())
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def lock(cls, ctx: OperationContext, subject_id: str, location: Location) -> InventoryRecord:
        """Fetch a record under a row lock (SELECT ... FOR UPDATE)."""
        try:
            return InventoryRecord.objects.select_for_update().get(
                tenant_id=ctx.tenant_id, subject_id=subject_id, location=location,
            )
        except InventoryRecord.DoesNotExist:
            raise NotFoundError(
                'RECORD_NOT_FOUND', subject=subject_id, location=location.code,
            ) from None

    @classmethod
    def lock_or_create(cls, ctx: OperationContext, subject_id: str, location: Location) -> InventoryRecord:
        """
        Fetch a record under a row lock, creating it on first receipt.

        get_or_create absorbs the IntegrityError of a concurrent creator.
        """
        record, created = InventoryRecord.objects.get_or_create(
            subject_id=subject_id,
            location=location,
            defaults={'tenant_id': ctx.tenant_id},
        )
        if created:
            logger.info(
                "stock.record.created",
                extra={"subject": subject_id, "location": location.code, "record_id": record.pk},
            )
        return InventoryRecord.objects.select_for_update().get(pk=record.pk)

    @classmethod
    def lock_many(cls, ctx: OperationContext,
                  keys: Iterable[tuple[str, Location]],
                  create_missing: Iterable[tuple[str, Location]] = ()) -> dict[tuple[str, int], InventoryRecord]:
        """
        Lock several records in deterministic (subject_id, location_id) order.

        Two operations touching the same records always acquire them in
        the same order, so they cannot deadlock on each other.

        Returns:
            {(subject_id, location_id): locked record}
        """
        creatable = {(s, loc.pk) for s, loc in create_missing}
        wanted = {(s, loc.pk): (s, loc) for s, loc in keys}
        for s, loc in create_missing:
            wanted[(s, loc.pk)] = (s, loc)

        locked = {}
        for key in sorted(wanted):
            subject_id, location = wanted[key]
            if key in creatable:
                locked[key] = cls.lock_or_create(ctx, subject_id, location)
            else:
                locked[key] = cls.lock(ctx, subject_id, location)
        return locked

    # ══════════════════════════════════════════════════════════════
    # THE PRIMITIVE
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def apply_delta(cls, record: InventoryRecord, delta: int, *,
                    movement_type=None, reason_code: str = '',
                    reason_text: str = '', reference: str = '',
                    actor: str = '', reserved_delta: int = 0,
                    correction: bool = False,
                    metadata: dict | None = None) -> tuple[InventoryRecord, StockMovement | None]:
        """
        Apply a signed change to one locked record.

        Args:
            record: Record obtained from lock()/lock_many() in this transaction
            delta: Change to on-hand quantity
            movement_type: Ledger type (required when delta != 0 or correction)
            reserved_delta: Change to reserved quantity (no ledger entry)
            correction: Reconciliation count. May leave reserved above the
                new quantity, in which case reserved is clamped down.

        Returns:
            (updated record, movement or None when quantity did not change)

        Raises:
            InsufficientStockError: available would become negative
            ValidationError: reserved would become negative, or a
                correction would make quantity negative
            ConcurrentModificationError: record changed since it was read

        Concurrency:
            - Caller holds the row lock (select_for_update)
            - UPDATE is conditional on `version` (compare-and-swap), so a
              stale record object is detected even without row locks
        """
        before = record.quantity
        new_quantity = before + delta
        new_reserved = record.reserved_quantity + reserved_delta

        if new_reserved < 0:
            raise ValidationError(
                'INVALID_QUANTITY',
                subject=record.subject_id,
                location_id=record.location_id,
                reserved=record.reserved_quantity,
                requested=-reserved_delta,
            )

        if correction:
            if new_quantity < 0:
                raise ValidationError(
                    'INVALID_QUANTITY',
                    subject=record.subject_id,
                    location_id=record.location_id,
                    counted=new_quantity,
                )
            if new_reserved > new_quantity:
                logger.warning(
                    "stock.reserved.clamped",
                    extra={
                        "record_id": record.pk,
                        "reserved": new_reserved,
                        "quantity": new_quantity,
                    },
                )
                new_reserved = new_quantity
        elif new_quantity < 0 or new_quantity - new_reserved < 0:
            raise InsufficientStockError(
                subject=record.subject_id,
                location_id=record.location_id,
                available=record.available_quantity,
                requested=max(-delta, 0) + max(reserved_delta, 0),
            )

        if delta != 0 or correction:
            if not reason_code:
                raise ValidationError('REASON_REQUIRED', subject=record.subject_id)
            if movement_type is None:
                raise ValueError("movement_type is required when quantity changes")

        now = timezone.now()
        updates = {
            'quantity': new_quantity,
            'reserved_quantity': new_reserved,
            'version': F('version') + 1,
            'updated_at': now,
        }
        if correction:
            updates['last_counted_at'] = now
        if delta > 0:
            updates['is_active'] = True

        with transaction.atomic():
            updated = InventoryRecord.objects.filter(
                pk=record.pk, version=record.version,
            ).update(**updates)
            if updated != 1:
                raise ConcurrentModificationError(
                    subject=record.subject_id,
                    location_id=record.location_id,
                    version=record.version,
                )

            record.quantity = new_quantity
            record.reserved_quantity = new_reserved
            record.version += 1
            record.updated_at = now
            if correction:
                record.last_counted_at = now
            if delta > 0:
                record.is_active = True

            movement = None
            if delta != 0 or correction:
                movement = StockLedger.append(
                    record,
                    movement_type=movement_type,
                    delta=delta,
                    before_quantity=before,
                    reason_code=reason_code,
                    reason_text=reason_text,
                    reference=reference,
                    actor=actor,
                    is_correction=correction,
                    metadata=metadata,
                )

        return record, movement
