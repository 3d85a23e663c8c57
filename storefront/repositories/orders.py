"""
Order Repository

Simulated checkout. Stock check, order insert, item inserts and stock
decrement run in one transaction; the decrement is conditional on enough
stock remaining, so a concurrent sale of the last unit fails cleanly
instead of driving stock negative.
"""

import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from storefront.database.adapters.base import Transaction
from storefront.database.mapper import EntityKind, normalize
from storefront.database.selector import BackendHandle
from storefront.database.sql import Dialect, Fragment, Param, StatementKind, build

logger = structlog.get_logger(__name__)

PAYMENT_METHODS = ("card", "paypal", "cash_on_delivery")


class CheckoutError(Exception):
    """Checkout rejected; nothing was written"""

    def __init__(self, message: str, product_id: Optional[int] = None):
        super().__init__(message)
        self.product_id = product_id


class ProductUnavailableError(CheckoutError):
    """Product missing or inactive"""


class InsufficientStockError(CheckoutError):
    """Not enough units left"""


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


def generate_order_number() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"ORD-{stamp}-{secrets.token_hex(3).upper()}"


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


async def _load_product(tx: Transaction, dialect: Dialect, product_id: int) -> Dict[str, Any]:
    statement = build(
        Fragment(
            "SELECT id, title, price, sale_price, stock FROM products WHERE id = ",
            Param(product_id),
            " AND is_active = TRUE",
        ),
        dialect,
    )
    result = await tx.execute(statement)
    if not result.rows:
        raise ProductUnavailableError(f"Product {product_id} is not available", product_id)
    return normalize(result.rows[0], EntityKind.PRODUCT)


async def checkout(
    db: BackendHandle,
    user_id: int,
    lines: Sequence[CartLine],
    shipping_address: Optional[Mapping[str, Any]] = None,
    billing_address: Optional[Mapping[str, Any]] = None,
    payment_method: str = "card",
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Place an order for ``lines`` at current effective prices.

    Returns:
        The stored order with its items

    Raises:
        ProductUnavailableError: If a product is missing or inactive
        InsufficientStockError: If a product lacks stock
    """
    if not lines:
        raise CheckoutError("Order has no items")

    dialect = db.dialect
    order_number = generate_order_number()
    billing_address = billing_address or shipping_address

    async with db.transaction() as tx:
        priced = []
        for line in lines:
            product = await _load_product(tx, dialect, line.product_id)
            if product["stock"] < line.quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {product['title']}", line.product_id
                )
            price = product["sale_price"] if product["sale_price"] is not None else product["price"]
            unit_price = _money(price)
            priced.append((line, unit_price, unit_price * line.quantity))

        total = sum((line_total for _, _, line_total in priced), Decimal("0.00"))
        order = await tx.insert(build(
            Fragment(
                "INSERT INTO orders (user_id, order_number, status, total_amount, shipping_address, "
                "billing_address, payment_method, payment_status, notes) VALUES (",
                Param(user_id), ", ",
                Param(order_number), ", ",
                Param("processing"), ", ",
                Param(total), ", ",
                Param(json.dumps(dict(shipping_address)) if shipping_address else None), ", ",
                Param(json.dumps(dict(billing_address)) if billing_address else None), ", ",
                Param(payment_method), ", ",
                Param("paid"), ", ",
                Param(notes), ")",
            ),
            dialect,
            kind=StatementKind.INSERT,
            returning="id",
        ))

        for line, unit_price, line_total in priced:
            await tx.execute(build(
                Fragment(
                    "INSERT INTO order_items (order_id, product_id, quantity, unit_price, total_price) VALUES (",
                    Param(order.last_id), ", ",
                    Param(line.product_id), ", ",
                    Param(line.quantity), ", ",
                    Param(unit_price), ", ",
                    Param(line_total), ")",
                ),
                dialect,
                kind=StatementKind.INSERT,
            ))
            decremented = await tx.execute(build(
                Fragment(
                    "UPDATE products SET stock = stock - ", Param(line.quantity),
                    " WHERE id = ", Param(line.product_id),
                    " AND stock >= ", Param(line.quantity),
                ),
                dialect,
                kind=StatementKind.UPDATE,
            ))
            if not decremented.rows_affected:
                raise InsufficientStockError(
                    f"Insufficient stock for product {line.product_id}", line.product_id
                )

    logger.info(
        "Order placed",
        order_id=order.last_id,
        order_number=order_number,
        user_id=user_id,
        items=len(priced),
        total=str(total),
    )
    return await get_order(db, order.last_id)


async def get_order(db: BackendHandle, order_id: int, user_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """
    Order with its items.

    Args:
        user_id: When given, only an order belonging to this user is found
    """
    where = Fragment("id = ", Param(order_id))
    if user_id is not None:
        where = where + Fragment(" AND user_id = ", Param(user_id))
    order = await db.fetch_one(build(Fragment("SELECT * FROM orders WHERE ", where), db.dialect), EntityKind.ORDER)
    if order is None:
        return None

    items = await db.fetch(
        build(
            Fragment(
                "SELECT oi.id, oi.product_id, p.title, oi.quantity, oi.unit_price, oi.total_price "
                "FROM order_items oi JOIN products p ON p.id = oi.product_id "
                "WHERE oi.order_id = ", Param(order_id), " ORDER BY oi.id",
            ),
            db.dialect,
        ),
        EntityKind.ORDER_ITEM,
    )
    order["items"] = items
    return order


async def list_orders(
    db: BackendHandle,
    user_id: Optional[int] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    """Orders newest first; all users when ``user_id`` is None"""
    where = Fragment(" WHERE user_id = ", Param(user_id)) if user_id is not None else Fragment()
    statement = build(
        Fragment(
            "SELECT * FROM orders", where,
            " ORDER BY created_at DESC, id DESC LIMIT ", Param(limit),
            " OFFSET ", Param(offset),
        ),
        db.dialect,
    )
    return await db.fetch(statement, EntityKind.ORDER)
