"""
Bounded retry for backing-store timeouts.

Statement and connect timeouts are configured on the database connection
(settings.DATABASES OPTIONS). A timeout or dropped connection surfaces as
OperationalError/InterfaceError; it is retried STORAGE_RETRY_ATTEMPTS times
with exponential backoff and then raised as StorageUnavailable.

Retries only happen outside an atomic block: inside one the transaction is
already broken, so the error is converted immediately.
"""

import logging
import time

from django.conf import settings
from django.db import InterfaceError, OperationalError, connection

from core.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (OperationalError, InterfaceError)


def with_storage_retry(func, *args, operation=None, **kwargs):
    """Call func(*args, **kwargs), retrying storage errors a bounded number of times."""
    attempts = max(1, getattr(settings, "STORAGE_RETRY_ATTEMPTS", 3))
    backoff = getattr(settings, "STORAGE_RETRY_BACKOFF_SECONDS", 0.1)

    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except STORAGE_ERRORS as exc:
            retryable = not connection.in_atomic_block and attempt < attempts
            logger.warning(
                "storage_operation_failed",
                extra={
                    "operation": operation or getattr(func, "__name__", "unknown"),
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "will_retry": retryable,
                    "error": str(exc),
                },
            )
            if not retryable:
                raise StorageUnavailable(
                    "Backing store unavailable, retry later",
                    {"operation": operation, "attempts": attempt},
                    retry_after=max(1, int(backoff * (2**attempt))),
                ) from exc
            # Drop the broken connection so the next attempt reconnects
            connection.close_if_unusable_or_obsolete()
            time.sleep(backoff * (2 ** (attempt - 1)))
