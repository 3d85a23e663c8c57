"""
Database Error Taxonomy

Driver exceptions from asyncpg and sqlite3/aiosqlite are translated into
these classes at the adapter boundary, so callers never depend on a driver.
"""

import asyncio
import sqlite3
from typing import Optional

import asyncpg


class DatabaseError(Exception):
    """Base class for every error raised by the data-access layer"""

    def __init__(self, message: str, *, backend: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.backend = backend
        self.cause = cause


class ConnectivityError(DatabaseError):
    """Backend unreachable, authentication failed or connection dropped"""


class TemporarilyUnavailableError(DatabaseError):
    """No connection could be acquired within the configured timeout"""


class StatementError(DatabaseError):
    """Malformed statement, unknown object or placeholder/param mismatch"""


class ConstraintViolationError(DatabaseError):
    """An integrity constraint rejected the write"""

    def __init__(self, message: str, *, constraint: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.constraint = constraint


class DuplicateRecordError(ConstraintViolationError):
    """A UNIQUE constraint rejected the write"""


class InitializationError(DatabaseError):
    """Neither backend could be initialized"""


def is_benign_ddl_collision(exc: BaseException) -> bool:
    """True for "already exists" races on idempotent schema statements"""
    return "already exists" in str(exc)


def translate_postgres_error(exc: BaseException) -> DatabaseError:
    """Map an asyncpg (or socket-level) exception onto the taxonomy"""
    if isinstance(exc, DatabaseError):
        return exc
    message = str(exc) or type(exc).__name__
    if isinstance(exc, asyncpg.UniqueViolationError):
        return DuplicateRecordError(
            message, constraint=getattr(exc, "constraint_name", None), backend="postgresql", cause=exc
        )
    if isinstance(exc, asyncpg.IntegrityConstraintViolationError):
        return ConstraintViolationError(
            message, constraint=getattr(exc, "constraint_name", None), backend="postgresql", cause=exc
        )
    if isinstance(exc, asyncio.TimeoutError):
        return TemporarilyUnavailableError(message or "connection acquisition timed out", backend="postgresql", cause=exc)
    if isinstance(
        exc,
        (
            OSError,
            asyncpg.ConnectionDoesNotExistError,
            asyncpg.InvalidAuthorizationSpecificationError,
            asyncpg.InvalidCatalogNameError,
            asyncpg.CannotConnectNowError,
            asyncpg.PostgresConnectionError,
        ),
    ):
        return ConnectivityError(message, backend="postgresql", cause=exc)
    if isinstance(exc, asyncpg.TooManyConnectionsError):
        return TemporarilyUnavailableError(message, backend="postgresql", cause=exc)
    if isinstance(exc, (asyncpg.PostgresError, asyncpg.InterfaceError, asyncpg.DataError)):
        return StatementError(message, backend="postgresql", cause=exc)
    return DatabaseError(message, backend="postgresql", cause=exc)


def translate_sqlite_error(exc: BaseException) -> DatabaseError:
    """Map a sqlite3 exception (re-raised by aiosqlite) onto the taxonomy"""
    if isinstance(exc, DatabaseError):
        return exc
    message = str(exc) or type(exc).__name__
    if isinstance(exc, sqlite3.IntegrityError):
        if "UNIQUE constraint failed" in message:
            constraint = message.split(":", 1)[1].strip() if ":" in message else None
            return DuplicateRecordError(message, constraint=constraint, backend="sqlite", cause=exc)
        return ConstraintViolationError(message, backend="sqlite", cause=exc)
    if isinstance(exc, sqlite3.OperationalError):
        lowered = message.lower()
        if "database is locked" in lowered or "database is busy" in lowered:
            return TemporarilyUnavailableError(message, backend="sqlite", cause=exc)
        if "unable to open" in lowered or "disk i/o" in lowered or "readonly" in lowered:
            return ConnectivityError(message, backend="sqlite", cause=exc)
        return StatementError(message, backend="sqlite", cause=exc)
    if isinstance(exc, (sqlite3.ProgrammingError, sqlite3.InterfaceError, sqlite3.DataError)):
        return StatementError(message, backend="sqlite", cause=exc)
    if isinstance(exc, (OSError, ValueError)):
        # aiosqlite raises ValueError("no active connection") once closed
        return ConnectivityError(message, backend="sqlite", cause=exc)
    return DatabaseError(message, backend="sqlite", cause=exc)
