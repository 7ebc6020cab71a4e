"""
Till Service — The single public interface for inventory and sale operations.

Usage:
    from tillman import till, TillmanError
    from tillman.protocols import OperationContext

    ctx = OperationContext(tenant_id='acme', location_id=store.pk, actor='ana')

    till.adjust_stock(ctx, 'SKU-1', +50, reason_code='count')
    sale = till.begin_sale(ctx, [{'subject_id': 'SKU-1', 'quantity': 3, 'unit_price': '10.00'}],
                           tax_amount='2.40')
    till.add_payment(ctx, sale.pk, 'cash', '32.40')
    till.complete_sale(ctx, sale.pk)

Every call receives an explicit OperationContext. Nothing in the core
reads tenant, location or user from ambient state.
"""

from tillman.protocols.context import OperationContext
from tillman.services.adjustments import StockAdjustments
from tillman.services.ledger import StockLedger
from tillman.services.queries import InventoryFilter, MovementFilter, StockQueries
from tillman.services.sales import SaleOrchestrator
from tillman.services.store import InventoryStore
from tillman.services.thresholds import StockThresholds
from tillman.services.transfers import StockTransfers, TransferLine


class Till:
    """
    Single interface for all inventory and point-of-sale operations.

    IMPORTANT: All state-changing methods run in atomic transactions
    with row locks, and retry serialization conflicts a bounded number
    of times. See each service's docstrings.
    """

    # ══════════════════════════════════════════════════════════════
    # STOCK: QUERIES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def get_record(cls, ctx: OperationContext, subject_id: str, location_id: int | None = None):
        location = InventoryStore.resolve_location(ctx, location_id)
        return InventoryStore.get(ctx, subject_id, location)

    @classmethod
    def available(cls, ctx: OperationContext, subject_id: str, location_id: int | None = None) -> int:
        return cls.get_record(ctx, subject_id, location_id).available_quantity

    @classmethod
    def get_inventory(cls, ctx: OperationContext, filters: InventoryFilter | None = None, **kwargs):
        if filters is None:
            filters = InventoryFilter(**kwargs)
        return StockQueries.get_inventory(ctx, filters)

    @classmethod
    def get_movements(cls, ctx: OperationContext, filters: MovementFilter | None = None, **kwargs):
        if filters is None:
            filters = MovementFilter(**kwargs)
        return StockQueries.get_movements(ctx, filters)

    @classmethod
    def inventory_summary(cls, ctx: OperationContext, recent: int = 10) -> dict:
        return StockQueries.inventory_summary(ctx, recent)

    @classmethod
    def evaluate_thresholds(cls, ctx: OperationContext, location_id: int | None = None,
                            only_alerts: bool = False):
        location = None
        if location_id is not None:
            location = InventoryStore.resolve_location(ctx, location_id)
        return StockThresholds.evaluate(ctx, location=location, only_alerts=only_alerts)

    # ══════════════════════════════════════════════════════════════
    # STOCK: MUTATIONS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def adjust_stock(cls, ctx: OperationContext, subject_id: str, delta: int,
                     reason_code: str, location_id: int | None = None, **kwargs):
        return StockAdjustments.adjust(ctx, subject_id, delta, reason_code, location_id, **kwargs)

    @classmethod
    def receive(cls, ctx: OperationContext, subject_id: str, quantity: int, **kwargs):
        return StockAdjustments.receive(ctx, subject_id, quantity, **kwargs)

    @classmethod
    def count(cls, ctx: OperationContext, subject_id: str, counted_quantity: int, **kwargs):
        return StockAdjustments.count(ctx, subject_id, counted_quantity, **kwargs)

    @classmethod
    def reserve(cls, ctx: OperationContext, subject_id: str, quantity: int,
                location_id: int | None = None):
        return StockAdjustments.reserve(ctx, subject_id, quantity, location_id)

    @classmethod
    def release(cls, ctx: OperationContext, subject_id: str, quantity: int,
                location_id: int | None = None):
        return StockAdjustments.release_reservation(ctx, subject_id, quantity, location_id)

    @classmethod
    def deactivate_record(cls, ctx: OperationContext, subject_id: str,
                          location_id: int | None = None):
        return StockAdjustments.deactivate(ctx, subject_id, location_id)

    @classmethod
    def transfer_stock(cls, ctx: OperationContext, subject_id: str,
                       from_location_id: int, to_location_id: int, quantity: int,
                       reason_code: str = 'transfer'):
        return StockTransfers.transfer(
            ctx, subject_id, from_location_id, to_location_id, quantity, reason_code,
        )

    @classmethod
    def transfer_many(cls, ctx: OperationContext, items, from_location_id: int,
                      to_location_id: int, reason_code: str = 'transfer'):
        """items: TransferLine objects or (subject_id, quantity) pairs."""
        lines = [
            item if isinstance(item, TransferLine) else TransferLine(*item)
            for item in items
        ]
        return StockTransfers.transfer_many(
            ctx, lines, from_location_id, to_location_id, reason_code,
        )

    # ══════════════════════════════════════════════════════════════
    # SALES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def price(cls, lines, order_discount=0, tax_amount=0):
        return SaleOrchestrator.price(lines, order_discount, tax_amount)

    @classmethod
    def begin_sale(cls, ctx: OperationContext, lines, **kwargs):
        return SaleOrchestrator.begin_sale(ctx, lines, **kwargs)

    @classmethod
    def get_sale(cls, ctx: OperationContext, sale_id: int):
        return SaleOrchestrator.get(ctx, sale_id)

    @classmethod
    def add_payment(cls, ctx: OperationContext, sale_id: int, method: str, amount, **kwargs):
        return SaleOrchestrator.add_payment(ctx, sale_id, method, amount, **kwargs)

    @classmethod
    def remove_payment(cls, ctx: OperationContext, sale_id: int, sequence: int):
        return SaleOrchestrator.remove_payment(ctx, sale_id, sequence)

    @classmethod
    def collect_payments(cls, ctx: OperationContext, sale_id: int):
        return SaleOrchestrator.collect_payments(ctx, sale_id)

    @classmethod
    def complete_sale(cls, ctx: OperationContext, sale_id: int):
        return SaleOrchestrator.complete_sale(ctx, sale_id)

    @classmethod
    def abort_sale(cls, ctx: OperationContext, sale_id: int, reason: str = 'aborted'):
        return SaleOrchestrator.abort_sale(ctx, sale_id, reason)

    @classmethod
    def void_sale(cls, ctx: OperationContext, sale_id: int, reason: str):
        return SaleOrchestrator.void_sale(ctx, sale_id, reason)

    @classmethod
    def receipt(cls, ctx: OperationContext, sale_id: int) -> dict:
        return SaleOrchestrator.receipt(SaleOrchestrator.get(ctx, sale_id))

    # ══════════════════════════════════════════════════════════════
    # LEDGER
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def replay(cls, ctx: OperationContext, record_id: int):
        return StockLedger.replay(record_id, ctx.tenant_id)

    @classmethod
    def audit_ledger(cls, ctx: OperationContext | None = None):
        """Replay every record (of the tenant, when ctx is given); returns mismatches."""
        return StockLedger.audit(ctx.tenant_id if ctx is not None else None)
