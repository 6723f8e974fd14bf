"""Tests for storage error classification and the transient retry policy."""

import sqlite3
from unittest.mock import AsyncMock, MagicMock

import pytest

from cities_collective.storage.database import DatabaseManager
from cities_collective.storage.resilience import (
    CityNotFoundError,
    NotFoundError,
    StorageError,
    TransientStorageError,
    UserNotFoundError,
    classify_sqlite_error,
)


class TestExceptionHierarchy:
    def test_transient_is_storage_error(self):
        assert issubclass(TransientStorageError, StorageError)

    def test_not_found_errors(self):
        assert issubclass(CityNotFoundError, NotFoundError)
        assert issubclass(UserNotFoundError, NotFoundError)
        err = CityNotFoundError(7)
        assert err.city_id == 7
        assert str(err) == "City 7 not found"


class TestClassifySqliteError:
    def test_locked_is_transient(self):
        err = classify_sqlite_error(sqlite3.OperationalError("database is locked"))
        assert isinstance(err, TransientStorageError)

    def test_busy_is_transient(self):
        err = classify_sqlite_error(sqlite3.OperationalError("Database is busy"))
        assert isinstance(err, TransientStorageError)

    def test_other_operational_error_is_permanent(self):
        err = classify_sqlite_error(sqlite3.OperationalError("no such table: x"))
        assert type(err) is StorageError

    def test_integrity_error_is_permanent(self):
        err = classify_sqlite_error(sqlite3.IntegrityError("UNIQUE constraint failed"))
        assert type(err) is StorageError


def _cursor(row: dict | None) -> MagicMock:
    cursor = MagicMock()
    cursor.fetchone = AsyncMock(return_value=row)
    return cursor


class TestRetry:
    async def test_transient_error_retried(self):
        db = DatabaseManager(":memory:")
        db.connection = MagicMock()
        db.connection.execute = AsyncMock(
            side_effect=[sqlite3.OperationalError("database is locked"), _cursor({"n": 1})]
        )
        assert await db.fetch_one("SELECT 1 AS n") == {"n": 1}
        assert db.connection.execute.await_count == 2

    async def test_gives_up_after_three_attempts(self):
        db = DatabaseManager(":memory:")
        db.connection = MagicMock()
        db.connection.execute = AsyncMock(
            side_effect=sqlite3.OperationalError("database is locked")
        )
        with pytest.raises(TransientStorageError):
            await db.fetch_one("SELECT 1")
        assert db.connection.execute.await_count == 3

    async def test_permanent_error_not_retried(self):
        db = DatabaseManager(":memory:")
        db.connection = MagicMock()
        db.connection.execute = AsyncMock(side_effect=sqlite3.OperationalError("syntax error"))
        with pytest.raises(StorageError):
            await db.fetch_one("SELEC 1")
        assert db.connection.execute.await_count == 1
