"""
Backend Adapter Contract

Both backends expose the same surface:

    execute(statement)  -> QueryResult(rows, rows_affected)
    insert(statement)   -> InsertResult(last_id)
    transaction()       -> async context manager yielding a Transaction
    run_ddl(text)       -> None, "already exists" collisions tolerated
    ping()              -> bool

Statements arrive either as ``Statement`` objects (tagged by the query
builder) or as raw text, which is classified on the way in.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

import structlog

from storefront.database.errors import DatabaseError, StatementError, is_benign_ddl_collision
from storefront.database.sql import Dialect, Statement, StatementKind, statement_from_text

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]


@dataclass
class QueryResult:
    """Rows returned by a statement plus the number of rows it touched"""
    rows: List[Record] = field(default_factory=list)
    rows_affected: int = 0

    @property
    def first(self) -> Optional[Record]:
        return self.rows[0] if self.rows else None


@dataclass(frozen=True)
class InsertResult:
    """Identity of a freshly inserted row"""
    last_id: Optional[int]


def as_statement(statement: Union[Statement, str], params: Sequence[Any] = ()) -> Statement:
    """Accept either a tagged ``Statement`` or raw text plus params"""
    if isinstance(statement, Statement):
        if params:
            raise StatementError("params must not be passed alongside a Statement")
        return statement
    return statement_from_text(statement, params)


class Transaction(ABC):
    """
    Statements bound to one checked-out connection.

    ``begin``/``commit``/``rollback`` raise the same ``DatabaseError`` family
    as ``execute``.
    """

    @abstractmethod
    async def begin(self) -> None: ...

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...

    @abstractmethod
    async def execute(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> QueryResult: ...

    async def insert(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> InsertResult:
        result = await self.execute(_require_returning(as_statement(statement, params)))
        return InsertResult(last_id=_last_id(result))


class DatabaseAdapter(ABC):
    """Common behaviour of the PostgreSQL and SQLite adapters"""

    name: str = "unknown"
    dialect: Dialect

    @abstractmethod
    async def open(self) -> None:
        """Connect; raise ``ConnectivityError`` if the backend is unreachable"""

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def execute(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> QueryResult:
        """Run one statement and return its rows / affected count"""

    @abstractmethod
    def _transaction(self) -> "AsyncIterator[Transaction]": ...

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """
        Run statements on a single connection inside BEGIN/COMMIT.

        Commits when the block exits normally, rolls back on any exception.

        Example:
            async with adapter.transaction() as tx:
                await tx.execute(stmt)
        """
        async with self._transaction() as tx:
            await tx.begin()
            try:
                yield tx
            except BaseException:
                await tx.rollback()
                raise
            else:
                await tx.commit()

    async def insert(self, statement: Union[Statement, str], params: Sequence[Any] = ()) -> InsertResult:
        """Insert one row and return its id"""
        result = await self.execute(_require_returning(as_statement(statement, params)))
        return InsertResult(last_id=_last_id(result))

    async def run_ddl(self, text: str) -> None:
        """Execute a schema statement; benign "already exists" races are ignored"""
        try:
            await self.execute(Statement(text=text, kind=StatementKind.DDL, dialect=self.dialect))
        except DatabaseError as exc:
            if not is_benign_ddl_collision(exc):
                raise
            logger.warning("Schema object already exists, continuing", backend=self.name, error=str(exc))

    async def ping(self) -> bool:
        """True if a trivial query succeeds; never raises"""
        try:
            await self.execute(Statement(text="SELECT 1 AS ok", dialect=self.dialect))
            return True
        except DatabaseError:
            return False

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


def _require_returning(statement: Statement) -> Statement:
    if statement.kind is not StatementKind.INSERT:
        raise StatementError(f"insert() needs an INSERT statement, got {statement.kind.value}")
    if not statement.returning:
        raise StatementError("insert() needs a statement built with returning='id'")
    return statement


def _last_id(result: QueryResult) -> Optional[int]:
    row = result.first
    if row is None:
        return None
    return row.get("id")
