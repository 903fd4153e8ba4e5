"""Fakes for service tests that mock the database session."""

from contextlib import asynccontextmanager
from unittest.mock import MagicMock

import asyncpg


@asynccontextmanager
async def null_savepoint():
    yield


def make_result(rows=None, scalars=None, tuples=None):
    """Build a fake SQLAlchemy Result for the access pattern under test."""
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows or []
    result.scalars.return_value.all.return_value = scalars or []
    result.all.return_value = tuples or []
    return result


class FakeDriverError(Exception):
    """Driver-level error carrying a PostgreSQL SQLSTATE, like asyncpg's."""

    def __init__(self, sqlstate: str, message: str = "driver error"):
        super().__init__(message)
        self.sqlstate = sqlstate


class FakeClientDataError(asyncpg.InterfaceError, ValueError):
    """asyncpg refusing to encode a query argument (e.g. an int past int64)."""
