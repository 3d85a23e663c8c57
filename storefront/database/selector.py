"""
Backend Selector

Boot-time choice between PostgreSQL and the embedded SQLite fallback.

``initialize()`` tries the primary backend (pool, schema, admin seed). A
benign "already exists" DDL race still counts as success. Any other failure
falls back to SQLite with the same schema and seed; if that fails too the
process must not serve traffic and ``InitializationError`` is raised.

The result is an immutable ``BackendHandle`` that is handed to every
consumer. The choice is never revisited while the process runs.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Union

import structlog

from storefront.config.settings import Settings, get_settings
from storefront.database.adapters.base import DatabaseAdapter, InsertResult, QueryResult
from storefront.database.adapters.postgres import PostgresAdapter
from storefront.database.adapters.sqlite import SQLiteAdapter
from storefront.database.errors import DatabaseError, InitializationError, is_benign_ddl_collision
from storefront.database.mapper import EntityKind, normalize, normalize_all
from storefront.database.schema import initialize_schema
from storefront.database.sql import Dialect, Statement

logger = structlog.get_logger(__name__)

AdapterFactory = Callable[[Settings], DatabaseAdapter]


@dataclass(frozen=True)
class BackendHandle:
    """
    The single query entry point for the lifetime of the process.

    Example:
        handle = await initialize(settings)
        products = await handle.fetch(statement, EntityKind.PRODUCT)
    """
    adapter: DatabaseAdapter
    fallback_reason: Optional[str] = None

    @property
    def backend(self) -> str:
        return self.adapter.name

    @property
    def dialect(self) -> Dialect:
        return self.adapter.dialect

    @property
    def is_fallback(self) -> bool:
        return self.fallback_reason is not None

    async def query(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> QueryResult:
        """Forward a statement (or raw text plus params) to the active adapter"""
        return await self.adapter.execute(statement, params)

    async def insert(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> InsertResult:
        return await self.adapter.insert(statement, params)

    async def fetch(self, statement: Statement, kind: EntityKind = EntityKind.GENERIC) -> List[dict]:
        """Run a read and normalize every row"""
        result = await self.adapter.execute(statement)
        return normalize_all(result.rows, kind)

    async def fetch_one(self, statement: Statement, kind: EntityKind = EntityKind.GENERIC) -> Optional[dict]:
        result = await self.adapter.execute(statement)
        return normalize(result.rows[0], kind) if result.rows else None

    def transaction(self):
        return self.adapter.transaction()

    async def ping(self) -> bool:
        return await self.adapter.ping()

    async def close(self) -> None:
        await self.adapter.close()


def _default_primary(settings: Settings) -> DatabaseAdapter:
    return PostgresAdapter(settings.database, require_ssl=settings.is_production)


def _default_secondary(settings: Settings) -> DatabaseAdapter:
    return SQLiteAdapter(settings.sqlite)


async def _bring_up(adapter: DatabaseAdapter, settings: Settings) -> None:
    await adapter.open()
    await initialize_schema(adapter, settings.admin)


async def _discard(adapter: DatabaseAdapter) -> None:
    try:
        await adapter.close()
    except (DatabaseError, OSError) as e:
        logger.warning("Failed to close abandoned backend", backend=adapter.name, error=str(e))


async def initialize(
    settings: Optional[Settings] = None,
    *,
    primary_factory: AdapterFactory = _default_primary,
    secondary_factory: AdapterFactory = _default_secondary,
) -> BackendHandle:
    """
    Select and initialize the backend.

    Args:
        settings: Application settings (defaults to the cached settings)
        primary_factory: Builds the primary adapter
        secondary_factory: Builds the fallback adapter

    Returns:
        BackendHandle: Handle bound to the backend that came up

    Raises:
        InitializationError: If both backends fail
    """
    settings = settings or get_settings()
    logger.info("Starting database initialization")

    primary = primary_factory(settings)
    try:
        logger.info("Attempting primary backend", backend=primary.name)
        await _bring_up(primary, settings)
        logger.info("Using primary database", backend=primary.name)
        return BackendHandle(adapter=primary)
    except Exception as exc:
        if is_benign_ddl_collision(exc):
            logger.warning("Some database objects already exist, continuing", backend=primary.name, error=str(exc))
            return BackendHandle(adapter=primary)
        primary_error = exc
        await _discard(primary)

    logger.warning(
        "Primary database unavailable, falling back",
        backend=primary.name,
        error=str(primary_error),
        error_type=type(primary_error).__name__,
    )

    secondary = secondary_factory(settings)
    try:
        await _bring_up(secondary, settings)
    except Exception as exc:
        await _discard(secondary)
        logger.error(
            "Both database backends failed",
            primary_error=str(primary_error),
            secondary_error=str(exc),
        )
        raise InitializationError("Unable to initialize any database", cause=exc) from exc

    logger.info(
        "Using fallback database",
        backend=secondary.name,
        reason=str(primary_error),
    )
    return BackendHandle(adapter=secondary, fallback_reason=str(primary_error) or type(primary_error).__name__)
