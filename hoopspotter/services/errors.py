"""
Error taxonomy for the court service layer.

Backend errors carry a stable ``code`` and a ``message`` that can be shown
to end users as-is. ``classify_backend_error`` turns raw SQLAlchemy, driver
and socket errors into one of them.
"""

import asyncio
from typing import Optional

import asyncpg
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError

# PostgreSQL SQLSTATE codes
UNDEFINED_TABLE = "42P01"
UNDEFINED_FUNCTION = "42883"
INVALID_PASSWORD = "28P01"
INVALID_AUTHORIZATION = "28000"

# Everything the database layer can raise at us: SQLAlchemy-wrapped errors,
# raw driver errors from connection setup, and socket/timeout errors.
BACKEND_EXCEPTIONS = (
    SQLAlchemyError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class ConfigurationError(RuntimeError):
    """Required configuration (credentials, URLs) is missing."""


class BackendError(Exception):
    """Base class for failures talking to the managed backend."""

    code = "query_failed"
    default_message = "Failed to load courts. Please try again."
    status_code = 500

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BackendUnavailableError(BackendError):
    code = "backend_unavailable"
    default_message = "The court database is unreachable right now. Please try again later."
    status_code = 503


class InvalidCredentialsError(BackendError):
    code = "invalid_credentials"
    default_message = (
        "The server could not authenticate with the court database. "
        "Check the configured credentials."
    )
    status_code = 503


class SchemaMissingError(BackendError):
    code = "schema_missing"
    default_message = (
        "The court database schema has not been applied yet. "
        "Run the migrations and try again."
    )
    status_code = 503


class QueryFailedError(BackendError):
    code = "query_failed"


class PhotoUploadError(Exception):
    """Photo upload failed after the court row was created (and then removed)."""


class CourtNotFoundError(LookupError):
    """The court a write refers to does not exist."""


def _iter_error_chain(exc: BaseException):
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.append(getattr(current, "orig", None))
        pending.append(current.__cause__)


def get_sqlstate(exc: BaseException) -> Optional[str]:
    """
    Return the PostgreSQL SQLSTATE attached to an error, if any.

    Looks at the exception itself, the DBAPI error wrapped by SQLAlchemy
    (``.orig``) and the driver error chained behind it.
    """
    for current in _iter_error_chain(exc):
        for attr in ("sqlstate", "pgcode"):
            code = getattr(current, attr, None)
            if isinstance(code, str) and code:
                return code
    return None


def is_client_data_error(exc: BaseException) -> bool:
    """
    True when the driver refused a query parameter before sending it.

    asyncpg raises a ``ValueError`` subclass (also an ``InterfaceError``)
    for values it cannot encode, such as integers outside int64. The
    connection is fine in that case.
    """
    return any(isinstance(current, ValueError) for current in _iter_error_chain(exc))


def is_missing_relation(exc: BaseException) -> bool:
    """True when the error is Postgres' "relation does not exist"."""
    return get_sqlstate(exc) == UNDEFINED_TABLE


def is_missing_schema_object(exc: BaseException) -> bool:
    """True for a missing table/view or a missing function."""
    return get_sqlstate(exc) in (UNDEFINED_TABLE, UNDEFINED_FUNCTION)


def classify_backend_error(exc: BaseException) -> BackendError:
    """
    Map a raw backend exception to a user-presentable BackendError.

    Args:
        exc: Exception raised while querying the database

    Returns:
        BackendError subclass instance describing the failure
    """
    if isinstance(exc, BackendError):
        return exc

    sqlstate = get_sqlstate(exc)
    if sqlstate in (INVALID_PASSWORD, INVALID_AUTHORIZATION):
        return InvalidCredentialsError()
    if sqlstate in (UNDEFINED_TABLE, UNDEFINED_FUNCTION):
        return SchemaMissingError()
    if is_client_data_error(exc):
        return QueryFailedError()
    if isinstance(exc, (OperationalError, InterfaceError, asyncpg.InterfaceError)):
        return BackendUnavailableError()
    if isinstance(exc, (OSError, asyncio.TimeoutError)):
        return BackendUnavailableError()
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return BackendUnavailableError()
    return QueryFailedError()
