"""Data-access layer: dual backends, statement composition, record mapping"""

from storefront.database.connection import check_database_health, get_backend
from storefront.database.errors import (
    ConnectivityError,
    ConstraintViolationError,
    DatabaseError,
    DuplicateRecordError,
    InitializationError,
    StatementError,
    TemporarilyUnavailableError,
)
from storefront.database.mapper import EntityKind, normalize
from storefront.database.selector import BackendHandle, initialize
from storefront.database.sql import Dialect, Fragment, Param, Statement, StatementKind, build

__all__ = [
    "BackendHandle",
    "ConnectivityError",
    "ConstraintViolationError",
    "DatabaseError",
    "Dialect",
    "DuplicateRecordError",
    "EntityKind",
    "Fragment",
    "InitializationError",
    "Param",
    "Statement",
    "StatementError",
    "StatementKind",
    "TemporarilyUnavailableError",
    "build",
    "check_database_health",
    "get_backend",
    "initialize",
    "normalize",
]
