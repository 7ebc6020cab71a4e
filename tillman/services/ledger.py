"""
Stock movement ledger — append-only log and replay.

append() is the only write. replay() rebuilds a record's quantity from
its full history; comparing it with the live record is both the
operational health check and the test oracle for every mutation.
"""

import logging
from dataclasses import dataclass, field

from tillman.exceptions import NotFoundError
from tillman.models.movement import StockMovement
from tillman.models.record import InventoryRecord

logger = logging.getLogger('tillman')


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of replaying one record's movements."""

    record_id: int
    replayed_quantity: int
    live_quantity: int
    movement_count: int
    broken_links: list[int] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.replayed_quantity == self.live_quantity and not self.broken_links


class StockLedger:
    """Append-only movement log."""

    @classmethod
    def append(cls, record: InventoryRecord, *, movement_type, delta: int,
               before_quantity: int, reason_code: str, reason_text: str = '',
               reference: str = '', actor: str = '', is_correction: bool = False,
               metadata: dict | None = None) -> StockMovement:
        """
        Write one movement. Must run in the transaction that updates the record.

        after_quantity is derived, so a movement can never disagree with
        its own delta.
        """
        return StockMovement.objects.create(
            record=record,
            tenant_id=record.tenant_id,
            movement_type=movement_type,
            delta=delta,
            before_quantity=before_quantity,
            after_quantity=before_quantity + delta,
            reason_code=reason_code,
            reason_text=reason_text,
            reference=reference,
            actor=actor,
            is_correction=is_correction,
            metadata=metadata or {},
        )

    @classmethod
    def history(cls, record_id: int):
        """Movements of a record in replay order."""
        return StockMovement.objects.filter(record_id=record_id).chronological()

    @classmethod
    def replay(cls, record_id: int, tenant_id: str | None = None) -> ReplayResult:
        """
        Rebuild quantity from movements and compare with the live record.

        Also walks the before/after chain: every movement must start where
        the previous one ended. Broken links are reported by movement pk.
        A record of another tenant is reported as not found.
        """
        qs = InventoryRecord.objects.all()
        if tenant_id is not None:
            qs = qs.for_tenant(tenant_id)
        try:
            record = qs.get(pk=record_id)
        except InventoryRecord.DoesNotExist:
            raise NotFoundError('RECORD_NOT_FOUND', record_id=record_id) from None

        total = 0
        count = 0
        broken = []
        previous_after = 0
        for movement in cls.history(record_id).iterator():
            if movement.before_quantity != previous_after:
                broken.append(movement.pk)
            total += movement.delta
            previous_after = movement.after_quantity
            count += 1

        result = ReplayResult(
            record_id=record.pk,
            replayed_quantity=total,
            live_quantity=record.quantity,
            movement_count=count,
            broken_links=broken,
        )
        if not result.consistent:
            logger.warning(
                "ledger.replay.mismatch",
                extra={
                    "record_id": record.pk,
                    "subject": record.subject_id,
                    "location_id": record.location_id,
                    "replayed": total,
                    "live": record.quantity,
                    "broken_links": broken,
                },
            )
        return result

    @classmethod
    def audit(cls, tenant_id: str | None = None) -> list[ReplayResult]:
        """Replay every record (of a tenant) and return the inconsistent ones."""
        qs = InventoryRecord.objects.all()
        if tenant_id is not None:
            qs = qs.for_tenant(tenant_id)

        mismatches = []
        for record_id in qs.values_list('pk', flat=True).iterator():
            result = cls.replay(record_id, tenant_id)
            if not result.consistent:
                mismatches.append(result)
        return mismatches
