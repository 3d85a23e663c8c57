"""Backend adapters"""

from storefront.database.adapters.base import (
    DatabaseAdapter,
    InsertResult,
    QueryResult,
    Transaction,
)
from storefront.database.adapters.postgres import PostgresAdapter
from storefront.database.adapters.sqlite import SQLiteAdapter

__all__ = [
    "DatabaseAdapter",
    "InsertResult",
    "PostgresAdapter",
    "QueryResult",
    "SQLiteAdapter",
    "Transaction",
]
