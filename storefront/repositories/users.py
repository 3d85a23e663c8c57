"""
User Repository

Accounts, credentials and profile updates. Uniqueness of username and email
is enforced by the storage layer; a clash surfaces as
``DuplicateRecordError``.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog

from storefront.database.mapper import EntityKind
from storefront.database.schema import hash_password, verify_password
from storefront.database.selector import BackendHandle
from storefront.database.sql import Fragment, Param, StatementKind, build, join

logger = structlog.get_logger(__name__)

PUBLIC_COLUMNS = (
    "id, username, email, first_name, last_name, role, phone, address, "
    "city, postal_code, country, is_active, created_at, updated_at"
)

REGISTRATION_FIELDS = (
    "username",
    "email",
    "first_name",
    "last_name",
    "phone",
    "address",
    "city",
    "postal_code",
    "country",
)

UPDATABLE_FIELDS = frozenset({
    "username",
    "email",
    "first_name",
    "last_name",
    "phone",
    "address",
    "city",
    "postal_code",
    "country",
    "role",
    "is_active",
})

ROLES = ("customer", "admin")


class NoUpdatableFieldsError(ValueError):
    """An update carried nothing that may be changed"""


async def get_user(db: BackendHandle, user_id: int) -> Optional[Dict[str, Any]]:
    statement = build(
        Fragment(f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id = ", Param(user_id)),
        db.dialect,
    )
    return await db.fetch_one(statement, EntityKind.USER)


async def register_user(db: BackendHandle, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Create a customer account.

    Raises:
        DuplicateRecordError: If the username or email is taken
    """
    columns = list(REGISTRATION_FIELDS) + ["password"]
    values = [data.get(name) for name in REGISTRATION_FIELDS]
    values.append(hash_password(data["password"]))
    statement = build(
        Fragment(
            "INSERT INTO users (",
            ", ".join(columns),
            ") VALUES (",
            join(", ", [Param(value) for value in values]),
            ")",
        ),
        db.dialect,
        kind=StatementKind.INSERT,
        returning="id",
    )
    result = await db.insert(statement)
    logger.info("User registered", user_id=result.last_id, username=data.get("username"))
    return await get_user(db, result.last_id)


async def authenticate(db: BackendHandle, login: str, password: str) -> Optional[Dict[str, Any]]:
    """
    Check credentials; ``login`` may be a username or an email address.

    Returns:
        The user without its password hash, or None
    """
    statement = build(
        Fragment(
            "SELECT * FROM users WHERE (username = ", Param(login),
            " OR email = ", Param(login),
            ") AND is_active = TRUE",
        ),
        db.dialect,
    )
    user = await db.fetch_one(statement, EntityKind.USER)
    if user is None or not verify_password(password, user["password"]):
        logger.info("Login rejected", login=login)
        return None
    user.pop("password", None)
    return user


async def list_users(db: BackendHandle, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
    """
    One page of users, newest first.

    Returns:
        (users, total user count)
    """
    count = await db.query(build(Fragment("SELECT COUNT(*) AS total FROM users"), db.dialect))
    total = int(count.rows[0]["total"])
    statement = build(
        Fragment(
            f"SELECT {PUBLIC_COLUMNS} FROM users ORDER BY created_at DESC, id DESC LIMIT ",
            Param(limit),
            " OFFSET ",
            Param((page - 1) * limit),
        ),
        db.dialect,
    )
    return await db.fetch(statement, EntityKind.USER), total


async def update_user(db: BackendHandle, user_id: int, updates: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Apply a partial update.

    Unknown fields are ignored; a non-empty ``password`` is re-hashed.

    Returns:
        The updated user, or None if it does not exist

    Raises:
        NoUpdatableFieldsError: If nothing in ``updates`` may be changed
        DuplicateRecordError: If the new username or email is taken
    """
    assignments = [
        Fragment(f"{name} = ", Param(value))
        for name, value in sorted(updates.items())
        if name in UPDATABLE_FIELDS and value is not None
    ]
    password = updates.get("password")
    if password and password.strip():
        assignments.append(Fragment("password = ", Param(hash_password(password))))
    if not assignments:
        raise NoUpdatableFieldsError("No valid fields to update")

    assignments.append(Fragment("updated_at = CURRENT_TIMESTAMP"))
    statement = build(
        Fragment("UPDATE users SET ", join(", ", assignments), " WHERE id = ", Param(user_id)),
        db.dialect,
        kind=StatementKind.UPDATE,
    )
    result = await db.query(statement)
    if not result.rows_affected:
        return None
    return await get_user(db, user_id)


async def soft_delete_user(db: BackendHandle, user_id: int) -> bool:
    statement = build(
        Fragment(
            "UPDATE users SET is_active = ", Param(False),
            ", updated_at = CURRENT_TIMESTAMP WHERE id = ", Param(user_id),
        ),
        db.dialect,
        kind=StatementKind.UPDATE,
    )
    result = await db.query(statement)
    if result.rows_affected:
        logger.info("User deactivated", user_id=user_id)
    return result.rows_affected > 0
