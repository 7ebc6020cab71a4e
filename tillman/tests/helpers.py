"""
Assertions shared by the test modules.
"""

from tillman.services.ledger import StockLedger


def assert_invariants(record):
    """Record invariant plus ledger replay."""
    record.refresh_from_db()
    assert record.quantity >= 0
    assert 0 <= record.reserved_quantity <= record.quantity
    assert record.quantity == record.reserved_quantity + record.available_quantity
    assert record.available_quantity >= 0
    replay = StockLedger.replay(record.pk)
    assert replay.consistent, replay
