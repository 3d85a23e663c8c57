"""
Database Schema

Tables are declared once with SQLAlchemy Core and compiled to DDL for each
backend dialect:

- PostgreSQL: SERIAL keys, JSONB semi-structured columns, native booleans,
  plpgsql triggers maintaining ``updated_at``
- SQLite: INTEGER PRIMARY KEY AUTOINCREMENT, JSON kept as TEXT, booleans as
  0/1, AFTER UPDATE triggers maintaining ``updated_at``

Schema creation is idempotent (``IF NOT EXISTS`` everywhere) and is followed
by seeding the administrative account when none exists.
"""

from typing import List

import structlog
from passlib.context import CryptContext
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    text,
    true,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.schema import CreateIndex, CreateTable

from storefront.config.settings import AdminSeedSettings
from storefront.database.errors import DuplicateRecordError
from storefront.database.sql import Dialect, Fragment, Param, StatementKind, build

logger = structlog.get_logger(__name__)

metadata = MetaData()

# Serialized text on SQLite, JSONB on PostgreSQL
JSONText = Text().with_variant(JSONB(), "postgresql")

_NOW = text("CURRENT_TIMESTAMP")


def _timestamps() -> List[Column]:
    return [
        Column("created_at", DateTime, server_default=_NOW),
        Column("updated_at", DateTime, server_default=_NOW),
    ]


users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String(50), unique=True, nullable=False),
    Column("email", String(100), unique=True, nullable=False),
    Column("password", String(255), nullable=False),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("role", String(20), server_default=text("'customer'")),
    Column("phone", String(20)),
    Column("address", Text),
    Column("city", String(50)),
    Column("postal_code", String(10)),
    Column("country", String(50)),
    Column("is_active", Boolean, server_default=true()),
    *_timestamps(),
    Index("idx_users_email", "email"),
    Index("idx_users_username", "username"),
    sqlite_autoincrement=True,
)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(200), nullable=False),
    Column("description", Text),
    Column("price", Numeric(10, 2), nullable=False),
    Column("sale_price", Numeric(10, 2)),
    Column("sku", String(50), unique=True, nullable=False),
    Column("stock", Integer, server_default=text("0")),
    Column("category", String(100)),
    Column("tags", JSONText, server_default=text("'[]'")),
    Column("rating", Numeric(2, 1), server_default=text("0.0")),
    Column("images", JSONText, server_default=text("'[]'")),
    Column("attributes", JSONText, server_default=text("'{}'")),
    Column("is_active", Boolean, server_default=true()),
    *_timestamps(),
    Index("idx_products_category", "category"),
    Index("idx_products_active", "is_active"),
    Index("idx_products_sku", "sku"),
    sqlite_autoincrement=True,
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("order_number", String(50), unique=True, nullable=False),
    Column("status", String(20), server_default=text("'pending'")),
    Column("total_amount", Numeric(10, 2), nullable=False),
    Column("shipping_address", JSONText),
    Column("billing_address", JSONText),
    Column("payment_method", String(50)),
    Column("payment_status", String(20), server_default=text("'pending'")),
    Column("notes", Text),
    *_timestamps(),
    Index("idx_orders_user_id", "user_id"),
    Index("idx_orders_status", "status"),
    sqlite_autoincrement=True,
)

# product_id is a weak reference: products are only ever soft-deleted
order_items = Table(
    "order_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("order_id", Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
    Column("product_id", Integer, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(10, 2), nullable=False),
    Column("total_price", Numeric(10, 2), nullable=False),
    Column("created_at", DateTime, server_default=_NOW),
    Index("idx_order_items_order_id", "order_id"),
    sqlite_autoincrement=True,
)

analytics_events = Table(
    "analytics_events",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("event_type", String(50), nullable=False),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="SET NULL")),
    Column("category", String(100)),
    Column("search_query", Text),
    Column("filter_data", JSONText),
    Column("session_id", String(100)),
    Column("user_agent", Text),
    Column("ip_address", String(45)),
    Column("created_at", DateTime, server_default=_NOW),
    Index("idx_analytics_events_type", "event_type"),
    Index("idx_analytics_events_product", "product_id"),
    Index("idx_analytics_events_created", "created_at"),
    sqlite_autoincrement=True,
)

# Tables whose rows carry an updated_at maintained by trigger
_TOUCHED_TABLES = ("users", "products", "orders")

_POSTGRES_TOUCH_FUNCTION = """
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = CURRENT_TIMESTAMP;
    RETURN NEW;
END;
$$ language 'plpgsql'
"""


def _postgres_triggers() -> List[str]:
    statements = [_POSTGRES_TOUCH_FUNCTION.strip()]
    for table in _TOUCHED_TABLES:
        statements.append(f"DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}")
        statements.append(
            f"CREATE TRIGGER update_{table}_updated_at "
            f"BEFORE UPDATE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()"
        )
    return statements


def _sqlite_triggers() -> List[str]:
    # Fires only when the statement did not set updated_at itself
    return [
        f"CREATE TRIGGER IF NOT EXISTS update_{table}_updated_at "
        f"AFTER UPDATE ON {table} FOR EACH ROW "
        f"WHEN NEW.updated_at IS OLD.updated_at "
        f"BEGIN UPDATE {table} SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id; END"
        for table in _TOUCHED_TABLES
    ]


def _sa_dialect(dialect: Dialect):
    if dialect is Dialect.POSTGRES:
        return postgresql.dialect()
    return sqlite.dialect()


def ddl_statements(dialect: Dialect) -> List[str]:
    """
    Ordered, idempotent DDL for a backend.

    Returns:
        Table creation, index creation and trigger statements
    """
    sa_dialect = _sa_dialect(dialect)
    statements = []
    for table in metadata.sorted_tables:
        statements.append(str(CreateTable(table, if_not_exists=True).compile(dialect=sa_dialect)).strip())
    for table in metadata.sorted_tables:
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(str(CreateIndex(index, if_not_exists=True).compile(dialect=sa_dialect)).strip())
    if dialect is Dialect.POSTGRES:
        statements.extend(_postgres_triggers())
    else:
        statements.extend(_sqlite_triggers())
    return statements


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    """Salted one-way hash; plaintext is never stored"""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


async def create_schema(adapter) -> None:
    """Run every DDL statement through the adapter"""
    statements = ddl_statements(adapter.dialect)
    for statement in statements:
        await adapter.run_ddl(statement)
    logger.info("Schema ready", backend=adapter.name, statements=len(statements))


async def ensure_admin(adapter, admin: AdminSeedSettings) -> bool:
    """
    Create the administrative account when no admin exists.

    Returns:
        True if an account was created
    """
    count_stmt = build(
        Fragment("SELECT COUNT(*) AS count FROM users WHERE role = ", Param("admin")),
        adapter.dialect,
    )
    result = await adapter.execute(count_stmt)
    if int(result.rows[0]["count"]) > 0:
        logger.info("Admin user already exists", backend=adapter.name)
        return False

    insert_stmt = build(
        Fragment(
            "INSERT INTO users (username, email, password, first_name, last_name, role, is_active) VALUES (",
            Param(admin.username), ", ",
            Param(admin.email), ", ",
            Param(hash_password(admin.password.get_secret_value())), ", ",
            Param(admin.first_name), ", ",
            Param(admin.last_name), ", ",
            Param("admin"), ", ",
            Param(True), ")",
        ),
        adapter.dialect,
        kind=StatementKind.INSERT,
    )
    try:
        await adapter.execute(insert_stmt)
    except DuplicateRecordError:
        # Another worker seeded it first
        logger.info("Admin user created concurrently", backend=adapter.name)
        return False
    logger.info("Default admin user created", backend=adapter.name, username=admin.username)
    return True


async def initialize_schema(adapter, admin: AdminSeedSettings) -> None:
    """Idempotent schema creation followed by the admin seed"""
    await create_schema(adapter)
    await ensure_admin(adapter, admin)
