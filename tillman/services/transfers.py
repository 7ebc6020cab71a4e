"""
Stock transfers — move quantity between two locations atomically.

Both legs (transfer-out at source, transfer-in at destination) are
written in one transaction and share one reference id, so a transfer is
either fully recorded or not recorded at all.
"""

import logging
import uuid
from dataclasses import dataclass

from django.db import transaction

from tillman.conf import tillman_settings
from tillman.exceptions import InsufficientStockError, InvalidTransferError, ValidationError
from tillman.models.enums import MovementType
from tillman.models.record import InventoryRecord
from tillman.protocols.context import OperationContext
from tillman.retry import retry_on_conflict
from tillman.services.store import InventoryStore

logger = logging.getLogger('tillman')


@dataclass(frozen=True)
class TransferLine:
    subject_id: str
    quantity: int


@dataclass(frozen=True)
class TransferResult:
    """Records after the transfer, keyed by subject."""

    reference: str
    from_records: dict[str, InventoryRecord]
    to_records: dict[str, InventoryRecord]

    @property
    def from_record(self) -> InventoryRecord:
        """Source record of a single-subject transfer."""
        return next(iter(self.from_records.values()))

    @property
    def to_record(self) -> InventoryRecord:
        """Destination record of a single-subject transfer."""
        return next(iter(self.to_records.values()))


def new_transfer_reference() -> str:
    return f"{tillman_settings.TRANSFER_REFERENCE_PREFIX}-{uuid.uuid4().hex[:12].upper()}"


class StockTransfers:
    """Inter-location transfers."""

    @classmethod
    def transfer(cls, ctx: OperationContext, subject_id: str,
                 from_location_id: int, to_location_id: int, quantity: int,
                 reason_code: str = 'transfer') -> TransferResult:
        """
        Move `quantity` of one subject from one location to another.

        Raises:
            InvalidTransferError('SAME_LOCATION' | 'INVALID_QUANTITY')
            ValidationError('REASON_REQUIRED')
            NotFoundError: unknown location, or no source record
            InsufficientStockError: source available < quantity
                (checked under the source row lock)
        """
        return cls.transfer_many(
            ctx, [TransferLine(subject_id, quantity)],
            from_location_id, to_location_id, reason_code,
        )

    @classmethod
    @retry_on_conflict
    def transfer_many(cls, ctx: OperationContext, lines: list[TransferLine],
                      from_location_id: int, to_location_id: int,
                      reason_code: str = 'transfer') -> TransferResult:
        """
        Move several subjects under one shared reference, all-or-nothing.

        Concurrency:
            - Runs under transaction.atomic()
            - Locks every source and destination record in
              (subject_id, location_id) order before writing
            - Any failure rolls back every leg already applied
        """
        if not lines:
            raise InvalidTransferError('INVALID_QUANTITY', quantity=0)

        merged: dict[str, int] = {}
        for line in lines:
            qty = line.quantity
            if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
                raise InvalidTransferError(
                    'INVALID_QUANTITY', subject=line.subject_id, quantity=qty,
                )
            merged[line.subject_id] = merged.get(line.subject_id, 0) + qty

        reason = (reason_code or '').strip()
        if not reason:
            raise ValidationError('REASON_REQUIRED')

        source = InventoryStore.resolve_location(ctx, from_location_id)
        destination = InventoryStore.resolve_location(ctx, to_location_id)
        # Compared after resolution: None falls back to the context location
        if source.pk == destination.pk:
            raise InvalidTransferError('SAME_LOCATION', location_id=source.pk)
        reference = new_transfer_reference()

        with transaction.atomic():
            locked = InventoryStore.lock_many(
                ctx,
                keys=[(subject, source) for subject in merged],
                create_missing=[(subject, destination) for subject in merged],
            )

            from_records = {}
            to_records = {}
            for subject_id in sorted(merged):
                qty = merged[subject_id]
                src = locked[(subject_id, source.pk)]
                dst = locked[(subject_id, destination.pk)]

                if src.available_quantity < qty:
                    raise InsufficientStockError(
                        subject=subject_id,
                        location_id=source.pk,
                        available=src.available_quantity,
                        requested=qty,
                    )

                src, _ = InventoryStore.apply_delta(
                    src, -qty,
                    movement_type=MovementType.TRANSFER_OUT,
                    reason_code=reason,
                    reason_text=f"Transfer to {destination.name}",
                    reference=reference,
                    actor=ctx.actor,
                    metadata={'to_location': destination.pk},
                )
                dst, _ = InventoryStore.apply_delta(
                    dst, qty,
                    movement_type=MovementType.TRANSFER_IN,
                    reason_code=reason,
                    reason_text=f"Transfer from {source.name}",
                    reference=reference,
                    actor=ctx.actor,
                    metadata={'from_location': source.pk},
                )
                from_records[subject_id] = src
                to_records[subject_id] = dst

        logger.info(
            "stock.transfer",
            extra={
                "reference": reference,
                "from": source.code,
                "to": destination.code,
                "lines": {s: q for s, q in merged.items()},
            },
        )
        return TransferResult(reference=reference, from_records=from_records, to_records=to_records)
