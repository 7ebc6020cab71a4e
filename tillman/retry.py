"""
Serialization-conflict retry.

Mutations run under transaction.atomic() with row locks. When a
concurrent writer wins the race anyway (version mismatch, PostgreSQL
serialization failure/deadlock, SQLite busy database) the whole
operation is re-run a bounded number of times with exponential backoff.

Retrying is only meaningful at the outermost transaction boundary: when
called inside an outer atomic block the conflict is re-raised at once so
the caller's transaction can be rolled back as a unit.
"""

import functools
import logging
import random
import time

from django.db import OperationalError, connection

from tillman.conf import tillman_settings
from tillman.exceptions import ConcurrentModificationError

logger = logging.getLogger('tillman')

# PostgreSQL SQLSTATEs: serialization_failure, deadlock_detected
_RETRYABLE_PGCODES = {'40001', '40P01'}


def is_serialization_failure(exc: BaseException) -> bool:
    """Does this database error mean 'lost a race, try again'?"""
    if isinstance(exc, ConcurrentModificationError):
        return True
    if not isinstance(exc, OperationalError):
        return False
    cause = exc.__cause__
    pgcode = getattr(cause, 'pgcode', None) or getattr(cause, 'sqlstate', None)
    if pgcode in _RETRYABLE_PGCODES:
        return True
    return 'database is locked' in str(exc).lower()


def retry_on_conflict(func):
    """
    Decorator: re-run `func` on serialization conflicts.

    After MAX_RETRIES failed attempts the last conflict surfaces as
    ConcurrentModificationError. Any other exception propagates untouched.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        if connection.in_atomic_block:
            try:
                return func(*args, **kwargs)
            except OperationalError as exc:
                if is_serialization_failure(exc):
                    raise ConcurrentModificationError(operation=func.__qualname__) from exc
                raise

        attempts = max(1, int(tillman_settings.MAX_RETRIES))
        backoff = float(tillman_settings.RETRY_BACKOFF_SECONDS)

        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except (ConcurrentModificationError, OperationalError) as exc:
                if not is_serialization_failure(exc):
                    raise
                if attempt == attempts:
                    logger.warning(
                        "tillman.retry.exhausted",
                        extra={"operation": func.__qualname__, "attempts": attempts},
                    )
                    if isinstance(exc, ConcurrentModificationError):
                        raise
                    raise ConcurrentModificationError(
                        operation=func.__qualname__, attempts=attempts,
                    ) from exc

                delay = backoff * (2 ** (attempt - 1))
                delay += random.uniform(0, backoff)
                logger.warning(
                    "tillman.retry",
                    extra={
                        "operation": func.__qualname__,
                        "attempt": attempt,
                        "delay": round(delay, 4),
                        "error": str(exc),
                    },
                )
                time.sleep(delay)

    return wrapper
