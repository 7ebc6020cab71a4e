"""
Tests for retry_on_conflict.
"""

import pytest
from django.db import OperationalError, transaction

from tillman.exceptions import ConcurrentModificationError
from tillman.retry import is_serialization_failure, retry_on_conflict


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    delays = []
    monkeypatch.setattr('tillman.retry.time.sleep', delays.append)
    return delays


def flaky(failures, exc_factory=ConcurrentModificationError):
    calls = []

    @retry_on_conflict
    def operation():
        calls.append(1)
        if len(calls) <= failures:
            raise exc_factory()
        return 'done'

    return operation, calls


class TestIsSerializationFailure:

    def test_concurrent_modification(self):
        assert is_serialization_failure(ConcurrentModificationError())

    def test_sqlite_busy(self):
        assert is_serialization_failure(OperationalError('database is locked'))

    def test_postgres_serialization_failure(self):
        cause = Exception('could not serialize access')
        cause.pgcode = '40001'
        exc = OperationalError('could not serialize access')
        exc.__cause__ = cause

        assert is_serialization_failure(exc)

    def test_other_errors(self):
        assert not is_serialization_failure(OperationalError('no such table'))
        assert not is_serialization_failure(ValueError('database is locked'))


class TestRetry:

    def test_succeeds_after_conflicts(self, settings, no_sleep):
        settings.TILLMAN = {**settings.TILLMAN, 'MAX_RETRIES': 3, 'RETRY_BACKOFF_SECONDS': 0.1}
        operation, calls = flaky(2)

        assert operation() == 'done'
        assert len(calls) == 3
        assert len(no_sleep) == 2
        # exponential: 0.1 * 2**(n-1) plus up to 0.1 jitter
        assert 0.1 <= no_sleep[0] <= 0.2
        assert 0.2 <= no_sleep[1] <= 0.3

    def test_exhausted(self, settings):
        settings.TILLMAN = {**settings.TILLMAN, 'MAX_RETRIES': 3}
        operation, calls = flaky(10)

        with pytest.raises(ConcurrentModificationError):
            operation()

        assert len(calls) == 3

    def test_database_busy_surfaces_as_conflict(self, settings):
        settings.TILLMAN = {**settings.TILLMAN, 'MAX_RETRIES': 2}
        operation, calls = flaky(10, lambda: OperationalError('database is locked'))

        with pytest.raises(ConcurrentModificationError) as exc:
            operation()

        assert exc.value.retryable
        assert isinstance(exc.value.__cause__, OperationalError)
        assert len(calls) == 2

    def test_other_errors_not_retried(self):
        operation, calls = flaky(1, lambda: OperationalError('no such table'))

        with pytest.raises(OperationalError):
            operation()

        assert len(calls) == 1

    @pytest.mark.django_db
    def test_no_retry_inside_outer_transaction(self):
        operation, calls = flaky(1)

        with pytest.raises(ConcurrentModificationError):
            with transaction.atomic():
                operation()

        assert len(calls) == 1
