"""
Analytics Repository

Append-only event log plus the aggregate reads behind the admin dashboard.
Time windows are bound as a cutoff timestamp so the same statement runs on
both backends.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import structlog

from storefront.database.mapper import EntityKind
from storefront.database.selector import BackendHandle
from storefront.database.sql import Fragment, Param, StatementKind, build

logger = structlog.get_logger(__name__)

EVENT_TYPES = ("product_view", "cart_add", "search", "filter_use", "page_view")

SEARCH_PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_SEARCH_PERIOD = "7d"


def utc_now() -> datetime:
    """Naive UTC, the same clock as CURRENT_TIMESTAMP"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def track_event(db: BackendHandle, event: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Record one event.

    Returns:
        {id, created_at} of the stored event
    """
    filter_data = event.get("filter_data")
    statement = build(
        Fragment(
            "INSERT INTO analytics_events (event_type, product_id, category, search_query, "
            "filter_data, session_id, user_agent, ip_address) VALUES (",
            Param(event["event_type"]), ", ",
            Param(event.get("product_id")), ", ",
            Param(event.get("category")), ", ",
            Param(event.get("search_query")), ", ",
            Param(json.dumps(filter_data) if filter_data else None), ", ",
            Param(event.get("session_id") or "anonymous"), ", ",
            Param(event.get("user_agent")), ", ",
            Param(event.get("ip_address")), ")",
        ),
        db.dialect,
        kind=StatementKind.INSERT,
        returning="id",
    )
    inserted = await db.insert(statement)
    stored = await db.fetch_one(
        build(Fragment("SELECT id, created_at FROM analytics_events WHERE id = ", Param(inserted.last_id)), db.dialect),
        EntityKind.ANALYTICS_EVENT,
    )
    return stored or {"id": inserted.last_id, "created_at": None}


def _top_products(dialect, since: datetime):
    return build(
        Fragment(
            "SELECT p.id, p.title, p.category, "
            "SUM(CASE WHEN e.event_type = 'product_view' THEN 1 ELSE 0 END) AS total_views, "
            "SUM(CASE WHEN e.event_type = 'cart_add' THEN 1 ELSE 0 END) AS total_cart_adds "
            "FROM analytics_events e JOIN products p ON p.id = e.product_id "
            "WHERE p.is_active = TRUE AND e.created_at >= ", Param(since),
            " GROUP BY p.id, p.title, p.category "
            "ORDER BY total_views DESC, p.id ASC LIMIT 10",
        ),
        dialect,
    )


def _top_searches(dialect, since: datetime):
    return build(
        Fragment(
            "SELECT search_query, COUNT(*) AS total_searches, MAX(created_at) AS last_searched_at "
            "FROM analytics_events WHERE event_type = 'search' AND search_query IS NOT NULL "
            "AND created_at >= ", Param(since),
            " GROUP BY search_query ORDER BY total_searches DESC, search_query ASC LIMIT 10",
        ),
        dialect,
    )


def _category_stats(dialect, since: datetime):
    return build(
        Fragment(
            "SELECT p.category, COUNT(DISTINCT p.id) AS products_count, "
            "SUM(CASE WHEN e.event_type = 'product_view' THEN 1 ELSE 0 END) AS total_views, "
            "SUM(CASE WHEN e.event_type = 'cart_add' THEN 1 ELSE 0 END) AS total_cart_adds "
            "FROM analytics_events e JOIN products p ON p.id = e.product_id "
            "WHERE p.is_active = TRUE AND p.category IS NOT NULL AND e.created_at >= ", Param(since),
            " GROUP BY p.category ORDER BY total_views DESC, p.category ASC",
        ),
        dialect,
    )


def _recent_activity(dialect, since: datetime):
    return build(
        Fragment(
            "SELECT event_type, COUNT(*) AS count, MAX(created_at) AS last_event_at "
            "FROM analytics_events WHERE created_at >= ", Param(since),
            " GROUP BY event_type ORDER BY count DESC, event_type ASC",
        ),
        dialect,
    )


def _overall_stats(dialect, since: datetime):
    return build(
        Fragment(
            "SELECT "
            "COUNT(CASE WHEN event_type = 'product_view' THEN 1 END) AS total_product_views, "
            "COUNT(CASE WHEN event_type = 'cart_add' THEN 1 END) AS total_cart_adds, "
            "COUNT(CASE WHEN event_type = 'search' THEN 1 END) AS total_searches, "
            "COUNT(DISTINCT session_id) AS unique_sessions "
            "FROM analytics_events WHERE created_at >= ", Param(since),
        ),
        dialect,
    )


async def dashboard(db: BackendHandle, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Dashboard sections: top products and searches over the last 7 days,
    category performance, event counts over the last 24 hours and overall
    totals for the week.
    """
    now = now or utc_now()
    week = now - timedelta(days=7)
    day = now - timedelta(hours=24)
    dialect = db.dialect
    summary = EntityKind.ANALYTICS_SUMMARY

    overall = await db.fetch_one(_overall_stats(dialect, week), summary)
    return {
        "top_products_by_views": await db.fetch(_top_products(dialect, week), summary),
        "top_searches": await db.fetch(_top_searches(dialect, week), summary),
        "category_stats": await db.fetch(_category_stats(dialect, week), summary),
        "recent_activity": await db.fetch(_recent_activity(dialect, day), summary),
        "overall_stats": overall or {},
    }


async def product_analytics(db: BackendHandle, product_id: int) -> Optional[Dict[str, Any]]:
    """
    View and cart counts for one product plus its 50 most recent events.

    Returns:
        None if the product does not exist
    """
    product = await db.fetch_one(
        build(
            Fragment(
                "SELECT p.id, p.title, p.category, p.price, p.sale_price, "
                "COALESCE(SUM(CASE WHEN e.event_type = 'product_view' THEN 1 ELSE 0 END), 0) AS total_views, "
                "COALESCE(SUM(CASE WHEN e.event_type = 'cart_add' THEN 1 ELSE 0 END), 0) AS total_cart_adds, "
                "MAX(CASE WHEN e.event_type = 'product_view' THEN e.created_at END) AS last_viewed_at "
                "FROM products p LEFT JOIN analytics_events e ON e.product_id = p.id "
                "WHERE p.id = ", Param(product_id),
                " GROUP BY p.id, p.title, p.category, p.price, p.sale_price",
            ),
            db.dialect,
        ),
        EntityKind.ANALYTICS_SUMMARY,
    )
    if product is None:
        return None

    views = product["total_views"] or 0
    product["conversion_rate"] = round(product["total_cart_adds"] * 100.0 / views, 2) if views else 0.0

    events = await db.fetch(
        build(
            Fragment(
                "SELECT event_type, created_at, category, filter_data FROM analytics_events "
                "WHERE product_id = ", Param(product_id),
                " ORDER BY created_at DESC, id DESC LIMIT 50",
            ),
            db.dialect,
        ),
        EntityKind.ANALYTICS_EVENT,
    )
    return {"product": product, "recent_events": events}


async def search_analytics(
    db: BackendHandle,
    period: str = DEFAULT_SEARCH_PERIOD,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Most frequent search terms within ``period`` (24h, 7d or 30d)"""
    window = SEARCH_PERIODS.get(period, SEARCH_PERIODS[DEFAULT_SEARCH_PERIOD])
    since = (now or utc_now()) - window
    statement = build(
        Fragment(
            "SELECT search_query, COUNT(*) AS search_count, MAX(created_at) AS last_searched_at "
            "FROM analytics_events WHERE created_at >= ", Param(since),
            " AND event_type = 'search' AND search_query IS NOT NULL "
            "GROUP BY search_query ORDER BY search_count DESC, search_query ASC LIMIT 20",
        ),
        db.dialect,
    )
    return await db.fetch(statement, EntityKind.ANALYTICS_SUMMARY)
