"""
SQLite Adapter

Embedded single-file fallback backend over aiosqlite.

- ``?`` placeholders bound strictly in order
- no native ``RETURNING``: an INSERT tagged ``returning`` is executed plain
  and answered with ``[{"id": cursor.lastrowid}]`` read from the same cursor
- JSON columns hold serialized text and booleans hold 0/1; rows are returned
  as stored and decoded later by the record mapper
- one shared autocommit connection serves plain statements; a transaction
  checks out its own connection to the same file
"""

import sqlite3
import time
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Sequence, Union

import aiosqlite
import structlog

from storefront.config.settings import SQLiteSettings
from storefront.database.adapters.base import (
    DatabaseAdapter,
    QueryResult,
    Transaction,
    as_statement,
)
from storefront.database.errors import ConnectivityError, translate_sqlite_error
from storefront.database.sql import Dialect, Statement, StatementKind, strip_returning

logger = structlog.get_logger(__name__)

# Same text layout as CURRENT_TIMESTAMP so comparisons stay lexical
sqlite3.register_adapter(Decimal, float)
sqlite3.register_adapter(datetime, lambda v: v.strftime("%Y-%m-%d %H:%M:%S"))
sqlite3.register_adapter(date, lambda v: v.isoformat())


async def _run(conn: aiosqlite.Connection, statement: Statement) -> QueryResult:
    if statement.kind is StatementKind.SELECT:
        async with conn.execute(statement.text, statement.params) as cursor:
            rows = [dict(row) for row in await cursor.fetchall()]
        return QueryResult(rows=rows, rows_affected=len(rows))

    if statement.kind is StatementKind.DDL and not statement.params:
        await conn.executescript(statement.text)
        return QueryResult()

    text = statement.text
    if statement.returning:
        text = strip_returning(text)
    async with conn.execute(text, statement.params) as cursor:
        rows_affected = cursor.rowcount
        last_id = cursor.lastrowid
    if statement.returning and statement.kind is StatementKind.INSERT:
        return QueryResult(rows=[{"id": last_id}], rows_affected=rows_affected)
    return QueryResult(rows=[], rows_affected=max(rows_affected, 0))


class SQLiteTransaction(Transaction):
    """Statements on a dedicated connection to the database file"""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def _control(self, text: str) -> None:
        try:
            await self._conn.execute(text)
        except Exception as exc:
            raise translate_sqlite_error(exc) from exc

    async def begin(self) -> None:
        # Take the write lock up front; a deferred upgrade can fail with SQLITE_BUSY
        await self._control("BEGIN IMMEDIATE")

    async def commit(self) -> None:
        await self._control("COMMIT")

    async def rollback(self) -> None:
        await self._control("ROLLBACK")

    async def execute(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> QueryResult:
        stmt = as_statement(statement, params)
        try:
            return await _run(self._conn, stmt)
        except Exception as exc:
            raise translate_sqlite_error(exc) from exc


class SQLiteAdapter(DatabaseAdapter):
    """
    Secondary backend.

    Usage:
        adapter = SQLiteAdapter(settings.sqlite)
        await adapter.open()
        result = await adapter.execute("SELECT * FROM products WHERE id = ?", [1])
    """

    name = "sqlite"
    dialect = Dialect.SQLITE

    def __init__(self, settings: SQLiteSettings):
        self.settings = settings
        self._conn: Optional[aiosqlite.Connection] = None

    async def _connect(self) -> aiosqlite.Connection:
        # isolation_level=None: autocommit unless BEGIN is issued explicitly
        conn = await aiosqlite.connect(self.settings.path, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await conn.execute(f"PRAGMA busy_timeout = {int(self.settings.busy_timeout_ms)}")
        await conn.execute("PRAGMA foreign_keys = ON")
        return conn

    async def open(self) -> None:
        if self._conn is not None:
            logger.warning("SQLite database already open")
            return
        try:
            parent = Path(self.settings.path).parent
            parent.mkdir(parents=True, exist_ok=True)
            self._conn = await self._connect()
            await self._conn.execute("PRAGMA journal_mode = WAL")
        except Exception as exc:
            raise translate_sqlite_error(exc) from exc
        logger.info("Connected to SQLite database", path=self.settings.path)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite database closed", path=self.settings.path)

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise ConnectivityError("SQLite database is not open", backend=self.name)
        return self._conn

    async def execute(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> QueryResult:
        stmt = as_statement(statement, params)
        conn = self._require_conn()
        start = time.perf_counter()
        try:
            result = await _run(conn, stmt)
        except Exception as exc:
            error = translate_sqlite_error(exc)
            logger.error(
                "Query error",
                backend=self.name,
                error=str(exc),
                error_type=type(error).__name__,
            )
            raise error from exc
        logger.debug(
            "Executed query",
            backend=self.name,
            kind=stmt.kind.value,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            rows=result.rows_affected,
        )
        return result

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[Transaction]:
        self._require_conn()
        try:
            conn = await self._connect()
        except Exception as exc:
            raise translate_sqlite_error(exc) from exc
        try:
            yield SQLiteTransaction(conn)
        finally:
            await conn.close()
