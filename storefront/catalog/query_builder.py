"""
Dynamic Query Builder

Builds catalog listing, search and suggestion statements for one dialect.

Each optional filter is a clause builder returning a ``Fragment`` (or
``None`` when the filter is unset). The fragments are joined in a fixed
order and rendered by ``sql.build``, which numbers placeholders and collects
params in a single pass.

Example:
    filters = CatalogFilters(category="Electronics", min_price=100, max_price=500)
    stmt = build_listing(filters, SortMode.PRICE_ASC, Dialect.SQLITE)
"""

from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from storefront.catalog.filters import CatalogFilters, SortMode
from storefront.database.sql import Dialect, Fragment, Param, Statement, build, join

EFFECTIVE_PRICE = "COALESCE(sale_price, price)"
HAS_ACTIVE_SALE = "(CASE WHEN sale_price IS NOT NULL AND sale_price < price THEN 1 ELSE 0 END)"

SUGGESTION_COLUMNS = "id, title, category, price, sale_price, images, rating"

DEFAULT_SEARCH_LIMIT = 20
DEFAULT_SUGGESTION_LIMIT = 5
DEFAULT_FEATURED_LIMIT = 4
DEFAULT_RELATED_LIMIT = 4
FEATURED_MIN_RATING = Decimal("4.5")

# Every ordering ends on id so ties come back in the same order every call
ORDERINGS = {
    SortMode.PRICE_ASC: f"{EFFECTIVE_PRICE} ASC, id ASC",
    SortMode.PRICE_DESC: f"{EFFECTIVE_PRICE} DESC, id ASC",
    SortMode.RATING: "rating DESC, id ASC",
    SortMode.NEWEST: "created_at DESC, id DESC",
    SortMode.FEATURED: f"{HAS_ACTIVE_SALE} DESC, rating DESC, id ASC",
}

ClauseBuilder = Callable[[CatalogFilters], Optional[Fragment]]


def _money(value: float) -> Decimal:
    return Decimal(str(value))


def _active(filters: CatalogFilters) -> Optional[Fragment]:
    if filters.include_inactive:
        return None
    return Fragment("is_active = TRUE")


def _category(filters: CatalogFilters) -> Optional[Fragment]:
    category = filters.category_filter
    if category is None:
        return None
    return Fragment("category = ", Param(category))


def _min_price(filters: CatalogFilters) -> Optional[Fragment]:
    if filters.min_price is None:
        return None
    return Fragment(f"{EFFECTIVE_PRICE} >= ", Param(_money(filters.min_price)))


def _max_price(filters: CatalogFilters) -> Optional[Fragment]:
    if filters.max_price is None:
        return None
    return Fragment(f"{EFFECTIVE_PRICE} <= ", Param(_money(filters.max_price)))


def _rating(filters: CatalogFilters) -> Optional[Fragment]:
    threshold = filters.min_rating
    if threshold is None:
        return None
    return Fragment("rating >= ", Param(threshold))


def _in_stock(filters: CatalogFilters) -> Optional[Fragment]:
    return Fragment("stock > 0") if filters.in_stock else None


def _on_sale(filters: CatalogFilters) -> Optional[Fragment]:
    if not filters.on_sale:
        return None
    return Fragment("sale_price IS NOT NULL AND sale_price < price")


FILTER_CLAUSES: Sequence[ClauseBuilder] = (
    _category,
    _min_price,
    _max_price,
    _rating,
    _in_stock,
    _on_sale,
)


def _where(filters: CatalogFilters, *leading: Fragment) -> Fragment:
    """``WHERE`` clause: visibility, then leading fragments, then filters"""
    conditions: List[Fragment] = []
    active = _active(filters)
    if active:
        conditions.append(active)
    conditions.extend(leading)
    for builder in FILTER_CLAUSES:
        clause = builder(filters)
        if clause:
            conditions.append(clause)
    if not conditions:
        return Fragment()
    return Fragment(" WHERE ", join(" AND ", conditions))


def _pagination(limit: Optional[int], offset: Optional[int] = None) -> Fragment:
    if not limit:
        return Fragment()
    fragment = Fragment(" LIMIT ", Param(int(limit)))
    if offset:
        fragment = fragment + Fragment(" OFFSET ", Param(int(offset)))
    return fragment


LIKE_ESCAPE = " ESCAPE '\\'"


def _pattern(term: str) -> str:
    """Substring pattern with LIKE wildcards in the term matched literally"""
    escaped = term.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _ladder(pattern: str, columns: Sequence[str], scores: Sequence[int], fallback: int) -> Fragment:
    """First matching column wins; scores are a priority ladder, not a sum"""
    whens = [
        Fragment(f"WHEN {column} LIKE ", Param(pattern), f"{LIKE_ESCAPE} THEN {score}")
        for column, score in zip(columns, scores)
    ]
    return Fragment("(CASE ", join(" ", whens), f" ELSE {fallback} END)")


def _any_match(pattern: str, columns: Sequence[str]) -> Fragment:
    matches = [Fragment(f"{column} LIKE ", Param(pattern), LIKE_ESCAPE) for column in columns]
    return Fragment("(", join(" OR ", matches), ")")


SEARCH_COLUMNS = (
    "LOWER(title)",
    "LOWER(sku)",
    "LOWER(category)",
    "LOWER(description)",
    "LOWER(CAST(tags AS TEXT))",
)
SEARCH_SCORES = (10, 9, 8, 7, 6)

SUGGESTION_COLUMNS_MATCHED = ("LOWER(title)", "LOWER(sku)", "LOWER(category)")
SUGGESTION_SCORES = (10, 9, 8)


def build_listing(filters: CatalogFilters, sort: SortMode, dialect: Dialect) -> Statement:
    """
    Catalog listing with optional filters.

    Args:
        filters: Optional constraints and pagination
        sort: Ordering; see ``ORDERINGS``
        dialect: Target backend dialect

    Returns:
        Statement: SELECT over ``products``
    """
    return build(
        Fragment(
            "SELECT * FROM products",
            _where(filters),
            f" ORDER BY {ORDERINGS[sort]}",
            _pagination(filters.limit, filters.offset),
        ),
        dialect,
    )


def build_search(
    term: str,
    filters: CatalogFilters,
    dialect: Dialect,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> Statement:
    """
    Free-text substring search ranked by the relevance ladder.

    Title beats SKU beats category beats description beats tags. Ties are
    broken by rating, then active sale, then id.
    """
    pattern = _pattern(term)
    return build(
        Fragment(
            "SELECT *, ",
            _ladder(pattern, SEARCH_COLUMNS, SEARCH_SCORES, 0),
            " AS relevance_score FROM products",
            _where(filters, _any_match(pattern, SEARCH_COLUMNS)),
            f" ORDER BY relevance_score DESC, rating DESC, {HAS_ACTIVE_SALE} DESC, id ASC",
            _pagination(limit, filters.offset),
        ),
        dialect,
    )


def build_suggestions(term: str, dialect: Dialect, limit: int = DEFAULT_SUGGESTION_LIMIT) -> Statement:
    """Lightweight search over title, SKU and category"""
    pattern = _pattern(term)
    return build(
        Fragment(
            f"SELECT {SUGGESTION_COLUMNS}, ",
            _ladder(pattern, SUGGESTION_COLUMNS_MATCHED, SUGGESTION_SCORES, 5),
            " AS relevance_score FROM products",
            _where(CatalogFilters(), _any_match(pattern, SUGGESTION_COLUMNS_MATCHED)),
            " ORDER BY relevance_score DESC, rating DESC, id ASC",
            _pagination(limit),
        ),
        dialect,
    )


def build_featured(dialect: Dialect, limit: int = DEFAULT_FEATURED_LIMIT) -> Statement:
    """Products on sale or rated 4.5 and up, in featured order"""
    return build(
        Fragment(
            "SELECT * FROM products",
            _where(
                CatalogFilters(),
                Fragment("(sale_price IS NOT NULL OR rating >= ", Param(FEATURED_MIN_RATING), ")"),
            ),
            f" ORDER BY {ORDERINGS[SortMode.FEATURED]}",
            _pagination(limit),
        ),
        dialect,
    )


def build_related(
    product_id: int,
    category: Optional[str],
    dialect: Dialect,
    limit: int = DEFAULT_RELATED_LIMIT,
) -> Statement:
    """Other active products in the same category, best rated first"""
    return build(
        Fragment(
            "SELECT * FROM products",
            _where(CatalogFilters(category=category), Fragment("id != ", Param(product_id))),
            " ORDER BY rating DESC, id ASC",
            _pagination(limit),
        ),
        dialect,
    )


def build_product_by_id(product_id: int, dialect: Dialect, include_inactive: bool = False) -> Statement:
    return build(
        Fragment(
            "SELECT * FROM products",
            _where(CatalogFilters(include_inactive=include_inactive), Fragment("id = ", Param(product_id))),
        ),
        dialect,
    )


def build_categories(dialect: Dialect) -> Statement:
    """Active categories with their product counts"""
    return build(
        Fragment(
            "SELECT category, COUNT(*) AS product_count FROM products",
            _where(CatalogFilters(), Fragment("category IS NOT NULL")),
            " GROUP BY category ORDER BY category",
        ),
        dialect,
    )
