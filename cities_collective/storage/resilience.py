"""Storage errors and retry policy for transient SQLite failures."""

import logging
import sqlite3

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


# ── Exception Hierarchy ──────────────────────────────────────────────────────


class StorageError(Exception):
    """Base class for all storage errors."""


class TransientStorageError(StorageError):
    """Retriable errors (database locked or busy)."""


class NotFoundError(StorageError):
    """A referenced row does not exist."""


class CityNotFoundError(NotFoundError):
    def __init__(self, city_id: int) -> None:
        super().__init__(f"City {city_id} not found")
        self.city_id = city_id


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


_TRANSIENT_MARKERS = ("database is locked", "database is busy", "database table is locked")


def classify_sqlite_error(error: sqlite3.Error) -> StorageError:
    """Map a sqlite3 error to the storage hierarchy.

    Lock and busy contention become :class:`TransientStorageError` so the
    retry policy picks them up; everything else is a plain :class:`StorageError`.
    """
    message = str(error).lower()
    if isinstance(error, sqlite3.OperationalError) and any(
        marker in message for marker in _TRANSIENT_MARKERS
    ):
        return TransientStorageError(str(error))
    return StorageError(str(error))


# ── Retry ─────────────────────────────────────────────────────────────────


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` callback that logs each retry."""
    attempt = retry_state.attempt_number
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Storage retry attempt %d after error: %s", attempt, exc)


resilient_query = retry(
    retry=retry_if_exception_type(TransientStorageError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    before_sleep=log_retry_attempt,
    reraise=True,
)
"""Tenacity decorator for retrying on ``TransientStorageError``."""
