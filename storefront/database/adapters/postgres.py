"""
PostgreSQL Adapter

asyncpg connection pool executing ``$n``-numbered statements.

- ``INSERT ... RETURNING`` runs natively in one round trip
- json/jsonb columns are written as serialized text and decoded to Python
  structures by a per-connection type codec
- connection acquisition is bounded by ``pool_timeout``
"""

import json
import ssl as ssl_module
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence, Union

import asyncpg
import structlog

from storefront.config.settings import DatabaseSettings
from storefront.database.adapters.base import (
    DatabaseAdapter,
    QueryResult,
    Record,
    Transaction,
    as_statement,
)
from storefront.database.errors import ConnectivityError, translate_postgres_error
from storefront.database.sql import Dialect, Statement, StatementKind

logger = structlog.get_logger(__name__)

JSON_FIELDS = frozenset({"tags", "images", "attributes", "shipping_address", "billing_address", "filter_data"})


def _encode_json(value: Any) -> str:
    """Callers pass pre-serialized text; structures are serialized here"""
    if isinstance(value, str):
        return value
    return json.dumps(value)


async def _init_connection(conn: asyncpg.Connection) -> None:
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=_encode_json,
            decoder=json.loads,
            schema="pg_catalog",
        )


def _normalize_row(record: asyncpg.Record) -> Record:
    row = dict(record)
    for key in JSON_FIELDS.intersection(row):
        value = row[key]
        if isinstance(value, str):
            try:
                row[key] = json.loads(value)
            except ValueError:
                # Left as text; the record mapper empties it
                pass
    return row


def parse_status(status: Optional[str]) -> int:
    """
    Affected row count from an asyncpg command status.

    Example:
        parse_status("INSERT 0 3")  # 3
        parse_status("UPDATE 1")    # 1
    """
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


async def _run(conn: asyncpg.Connection, statement: Statement) -> QueryResult:
    if statement.kind is StatementKind.SELECT or statement.returning:
        records = await conn.fetch(statement.text, *statement.params)
        rows = [_normalize_row(r) for r in records]
        return QueryResult(rows=rows, rows_affected=len(rows))
    status = await conn.execute(statement.text, *statement.params)
    return QueryResult(rows=[], rows_affected=parse_status(status))


class PostgresTransaction(Transaction):
    """Statements on one connection checked out of the pool"""

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def _control(self, text: str) -> None:
        try:
            await self._conn.execute(text)
        except Exception as exc:
            raise translate_postgres_error(exc) from exc

    async def begin(self) -> None:
        await self._control("BEGIN")

    async def commit(self) -> None:
        await self._control("COMMIT")

    async def rollback(self) -> None:
        await self._control("ROLLBACK")

    async def execute(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> QueryResult:
        stmt = as_statement(statement, params)
        try:
            return await _run(self._conn, stmt)
        except Exception as exc:
            raise translate_postgres_error(exc) from exc


class PostgresAdapter(DatabaseAdapter):
    """
    Primary backend.

    Usage:
        adapter = PostgresAdapter(settings.database, require_ssl=settings.is_production)
        await adapter.open()
        result = await adapter.execute(statement)
    """

    name = "postgresql"
    dialect = Dialect.POSTGRES

    def __init__(self, settings: DatabaseSettings, require_ssl: bool = False):
        self.settings = settings
        self.require_ssl = require_ssl
        self._pool: Optional[asyncpg.Pool] = None

    def _ssl(self):
        if not self.require_ssl:
            return None
        # Encrypted, certificate not verified (managed hosting default)
        context = ssl_module.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl_module.CERT_NONE
        return context

    async def open(self) -> None:
        if self._pool is not None:
            logger.warning("PostgreSQL pool already open")
            return
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.settings.dsn,
                min_size=self.settings.pool_min_size,
                max_size=self.settings.pool_max_size,
                timeout=self.settings.connect_timeout,
                command_timeout=self.settings.command_timeout,
                ssl=self._ssl(),
                init=_init_connection,
            )
        except Exception as exc:
            raise translate_postgres_error(exc) from exc
        logger.info(
            "PostgreSQL pool established",
            host=self.settings.host if not self.settings.url else "DATABASE_URL",
            database=self.settings.db,
            max_size=self.settings.pool_max_size,
        )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise ConnectivityError("PostgreSQL pool is not open", backend=self.name)
        return self._pool

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[asyncpg.Connection]:
        pool = self._require_pool()
        try:
            conn = await pool.acquire(timeout=self.settings.pool_timeout)
        except Exception as exc:
            raise translate_postgres_error(exc) from exc
        try:
            yield conn
        finally:
            await pool.release(conn)

    async def execute(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> QueryResult:
        stmt = as_statement(statement, params)
        start = time.perf_counter()
        async with self._acquire() as conn:
            try:
                result = await _run(conn, stmt)
            except Exception as exc:
                error = translate_postgres_error(exc)
                logger.error(
                    "Query error",
                    backend=self.name,
                    error=str(exc),
                    error_type=type(error).__name__,
                )
                raise error from exc
        if self.settings.echo:
            logger.debug(
                "Executed query",
                backend=self.name,
                text=stmt.text[:80],
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                rows=result.rows_affected,
            )
        return result

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[Transaction]:
        async with self._acquire() as conn:
            yield PostgresTransaction(conn)
