"""
Product Repository

Catalog reads go through the query builder; admin writes are hand-built
statements with a fixed column list.
"""

import json
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import structlog

from storefront.catalog.filters import CatalogFilters, SortMode
from storefront.catalog.query_builder import (
    DEFAULT_FEATURED_LIMIT,
    DEFAULT_RELATED_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SUGGESTION_LIMIT,
    build_categories,
    build_featured,
    build_listing,
    build_product_by_id,
    build_related,
    build_search,
    build_suggestions,
)
from storefront.database.mapper import EntityKind
from storefront.database.selector import BackendHandle
from storefront.database.sql import Fragment, Param, StatementKind, build, join

logger = structlog.get_logger(__name__)

WRITABLE_FIELDS = (
    "title",
    "description",
    "price",
    "sale_price",
    "sku",
    "stock",
    "category",
    "tags",
    "rating",
    "images",
    "attributes",
)


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def product_values(data: Mapping[str, Any]) -> List[Any]:
    """Bind values for ``WRITABLE_FIELDS``; JSON fields are serialized"""
    return [
        data.get("title"),
        data.get("description"),
        _decimal(data.get("price")),
        _decimal(data.get("sale_price") or None),
        data.get("sku"),
        int(data.get("stock") or 0),
        data.get("category"),
        json.dumps(list(data.get("tags") or [])),
        _decimal(data.get("rating") or 0),
        json.dumps(list(data.get("images") or [])),
        json.dumps(dict(data.get("attributes") or {})),
    ]


def effective_price(product: Mapping[str, Any]) -> Optional[float]:
    """Sale price when present, otherwise list price"""
    sale_price = product.get("sale_price")
    return sale_price if sale_price is not None else product.get("price")


async def list_products(
    db: BackendHandle,
    filters: CatalogFilters,
    sort: SortMode = SortMode.FEATURED,
) -> List[Dict[str, Any]]:
    return await db.fetch(build_listing(filters, sort, db.dialect), EntityKind.PRODUCT)


async def search_products(
    db: BackendHandle,
    term: str,
    filters: Optional[CatalogFilters] = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> List[Dict[str, Any]]:
    filters = filters or CatalogFilters()
    statement = build_search(term, filters, db.dialect, limit=filters.limit or limit)
    return await db.fetch(statement, EntityKind.PRODUCT)


async def suggest_products(
    db: BackendHandle,
    term: str,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> List[Dict[str, Any]]:
    """
    Compact suggestion entries for a search-as-you-type box.

    Returns:
        List of {id, title, category, price, image, type}; price is the
        effective price and image the first product image
    """
    rows = await db.fetch(build_suggestions(term, db.dialect, limit=limit), EntityKind.PRODUCT)
    return [
        {
            "id": row["id"],
            "title": row["title"],
            "category": row.get("category"),
            "price": effective_price(row),
            "image": row["images"][0] if row.get("images") else None,
            "type": "product",
        }
        for row in rows
    ]


async def featured_products(db: BackendHandle, limit: int = DEFAULT_FEATURED_LIMIT) -> List[Dict[str, Any]]:
    return await db.fetch(build_featured(db.dialect, limit=limit), EntityKind.PRODUCT)


async def get_product(
    db: BackendHandle,
    product_id: int,
    include_inactive: bool = False,
) -> Optional[Dict[str, Any]]:
    statement = build_product_by_id(product_id, db.dialect, include_inactive=include_inactive)
    return await db.fetch_one(statement, EntityKind.PRODUCT)


async def related_products(
    db: BackendHandle,
    product_id: int,
    limit: int = DEFAULT_RELATED_LIMIT,
) -> Optional[List[Dict[str, Any]]]:
    """
    Products sharing the category of ``product_id``.

    Returns:
        None when the product does not exist or is inactive
    """
    product = await get_product(db, product_id)
    if product is None:
        return None
    if product.get("category") is None:
        return []
    statement = build_related(product_id, product["category"], db.dialect, limit=limit)
    return await db.fetch(statement, EntityKind.PRODUCT)


async def list_categories(db: BackendHandle) -> List[Dict[str, Any]]:
    return await db.fetch(build_categories(db.dialect))


async def create_product(db: BackendHandle, data: Mapping[str, Any]) -> int:
    """
    Insert a product and return its id.

    Raises:
        DuplicateRecordError: If the SKU is taken
    """
    statement = build(
        Fragment(
            "INSERT INTO products (",
            ", ".join(WRITABLE_FIELDS),
            ") VALUES (",
            join(", ", [Param(value) for value in product_values(data)]),
            ")",
        ),
        db.dialect,
        kind=StatementKind.INSERT,
        returning="id",
    )
    result = await db.insert(statement)
    logger.info("Product created", product_id=result.last_id, sku=data.get("sku"))
    return result.last_id


async def update_product(db: BackendHandle, product_id: int, data: Mapping[str, Any]) -> bool:
    """
    Replace every writable field of an active product.

    Returns:
        False if no active product has ``product_id``
    """
    assignments = [
        Fragment(f"{name} = ", Param(value))
        for name, value in zip(WRITABLE_FIELDS, product_values(data))
    ]
    statement = build(
        Fragment(
            "UPDATE products SET ",
            join(", ", assignments),
            " WHERE id = ", Param(product_id),
            " AND is_active = TRUE",
        ),
        db.dialect,
        kind=StatementKind.UPDATE,
    )
    result = await db.query(statement)
    return result.rows_affected > 0


async def soft_delete_product(db: BackendHandle, product_id: int) -> bool:
    """Mark a product inactive; the row stays for order history"""
    statement = build(
        Fragment("UPDATE products SET is_active = ", Param(False), " WHERE id = ", Param(product_id)),
        db.dialect,
        kind=StatementKind.UPDATE,
    )
    result = await db.query(statement)
    if result.rows_affected:
        logger.info("Product deactivated", product_id=product_id)
    return result.rows_affected > 0
