"""
Pytest fixtures for Tillman tests.
"""

from decimal import Decimal

import pytest

from tillman import till
from tillman.adapters.catalog import get_catalog, reset_catalog
from tillman.models import Location
from tillman.protocols import OperationContext, SubjectInfo


TENANT = 'acme'


@pytest.fixture(autouse=True)
def catalog():
    """Fresh in-memory catalog for every test."""
    reset_catalog()
    yield get_catalog()
    reset_catalog()


@pytest.fixture
def main_store(db):
    """Default location of the tenant."""
    return Location.objects.create(
        tenant_id=TENANT,
        code='main',
        name='Main Street',
        is_default=True,
    )


@pytest.fixture
def warehouse(db):
    return Location.objects.create(
        tenant_id=TENANT,
        code='warehouse',
        name='Warehouse',
    )


@pytest.fixture
def ctx(main_store):
    return OperationContext(tenant_id=TENANT, location_id=main_store.pk, actor='tester')


@pytest.fixture
def other_ctx(db):
    """A second tenant with its own default location."""
    location = Location.objects.create(
        tenant_id='globex',
        code='main',
        name='Globex Main',
        is_default=True,
    )
    return OperationContext(tenant_id='globex', location_id=location.pk, actor='other')


@pytest.fixture
def mug(catalog):
    info = SubjectInfo(
        subject_id='MUG',
        name='Mug',
        unit_price=Decimal('10.00'),
        low_stock_threshold=5,
    )
    catalog.register(info)
    return info


@pytest.fixture
def stocked(ctx):
    """Receive stock: stocked('SKU-1', 100) at the default location."""

    def _stocked(subject_id, quantity, location=None):
        return till.receive(
            ctx, subject_id, quantity,
            location_id=location.pk if location is not None else None,
            reference='PO-SEED',
        )

    return _stocked

