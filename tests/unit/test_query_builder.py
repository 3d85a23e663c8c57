"""
Unit Tests - Catalog Query Builder
"""
from decimal import Decimal
from itertools import product

import pytest

from storefront.catalog.filters import CatalogFilters, SortMode
from storefront.catalog.query_builder import (
    ORDERINGS,
    build_categories,
    build_featured,
    build_listing,
    build_product_by_id,
    build_related,
    build_search,
    build_suggestions,
)
from storefront.database.sql import Dialect, count_placeholders, highest_placeholder


FILTER_VARIANTS = [
    CatalogFilters(),
    CatalogFilters(category="Electronics"),
    CatalogFilters(category="all", min_price=10),
    CatalogFilters(min_price=100, max_price=500),
    CatalogFilters(rating="4.5+", in_stock=True),
    CatalogFilters(rating="bogus", on_sale=True),
    CatalogFilters(category="Home", min_price=5, max_price=50, rating="4+", in_stock=True,
                   on_sale=True, limit=10, offset=20),
    CatalogFilters(limit=5),
    CatalogFilters(include_inactive=True, limit=3, offset=3),
]


def _statements(dialect):
    for filters, sort in product(FILTER_VARIANTS, list(SortMode)):
        yield build_listing(filters, sort, dialect)
    for filters in FILTER_VARIANTS:
        yield build_search("usb", filters, dialect)
    yield build_suggestions("hub", dialect)
    yield build_featured(dialect)
    yield build_related(3, "Electronics", dialect)
    yield build_product_by_id(3, dialect)
    yield build_categories(dialect)


class TestPlaceholderParity:
    """Every builder output binds exactly one value per placeholder"""

    @pytest.mark.parametrize("dialect", list(Dialect))
    def test_count_matches_params(self, dialect):
        """Test placeholder count equals param count"""
        for stmt in _statements(dialect):
            assert count_placeholders(stmt.text, dialect) == len(stmt.params), stmt.text

    def test_postgres_highest_number_matches_params(self):
        """Test $n numbering is dense and ends at the param count"""
        for stmt in _statements(Dialect.POSTGRES):
            assert highest_placeholder(stmt.text) == len(stmt.params), stmt.text

    def test_same_params_for_both_dialects(self):
        """Test params do not depend on the dialect"""
        for pg, lite in zip(_statements(Dialect.POSTGRES), _statements(Dialect.SQLITE)):
            assert pg.params == lite.params


class TestListing:
    """Tests for build_listing"""

    def test_no_filters_only_active(self):
        """Test the plain listing has only the visibility clause"""
        stmt = build_listing(CatalogFilters(), SortMode.FEATURED, Dialect.POSTGRES)

        assert stmt.text == f"SELECT * FROM products WHERE is_active = TRUE ORDER BY {ORDERINGS[SortMode.FEATURED]}"
        assert stmt.params == ()

    def test_filter_order_and_params(self):
        """Test clauses and params follow the fixed filter order"""
        filters = CatalogFilters(category="Electronics", min_price=100, max_price=500, rating="4+")

        stmt = build_listing(filters, SortMode.PRICE_ASC, Dialect.POSTGRES)

        assert (
            "WHERE is_active = TRUE AND category = $1 AND COALESCE(sale_price, price) >= $2 "
            "AND COALESCE(sale_price, price) <= $3 AND rating >= $4"
        ) in stmt.text
        assert stmt.params == ("Electronics", Decimal("100"), Decimal("500"), Decimal("4.0"))

    def test_all_category_is_unconstrained(self):
        stmt = build_listing(CatalogFilters(category="all"), SortMode.FEATURED, Dialect.SQLITE)

        assert "category = " not in stmt.text

    def test_unknown_rating_tier_ignored(self):
        """Test an unrecognized tier adds no clause"""
        stmt = build_listing(CatalogFilters(rating="3+"), SortMode.FEATURED, Dialect.SQLITE)

        assert "rating >=" not in stmt.text
        assert stmt.params == ()

    def test_boolean_filters(self):
        filters = CatalogFilters(in_stock=True, on_sale=True)

        stmt = build_listing(filters, SortMode.FEATURED, Dialect.SQLITE)

        assert "stock > 0" in stmt.text
        assert "sale_price IS NOT NULL AND sale_price < price" in stmt.text

    def test_pagination_params_last(self):
        """Test LIMIT and OFFSET come after every filter param"""
        filters = CatalogFilters(category="Home", limit=10, offset=20)

        stmt = build_listing(filters, SortMode.NEWEST, Dialect.POSTGRES)

        assert stmt.text.endswith("LIMIT $2 OFFSET $3")
        assert stmt.params == ("Home", 10, 20)

    def test_offset_without_limit_ignored(self):
        stmt = build_listing(CatalogFilters(offset=20), SortMode.FEATURED, Dialect.SQLITE)

        assert "OFFSET" not in stmt.text

    def test_include_inactive_drops_visibility_clause(self):
        stmt = build_listing(CatalogFilters(include_inactive=True), SortMode.NEWEST, Dialect.SQLITE)

        assert "is_active" not in stmt.text
        assert "WHERE" not in stmt.text

    @pytest.mark.parametrize("sort", list(SortMode))
    def test_every_ordering_ends_on_id(self, sort):
        """Test ties are always broken by id"""
        stmt = build_listing(CatalogFilters(), sort, Dialect.SQLITE)

        assert stmt.text.rstrip().endswith(("id ASC", "id DESC"))

    def test_featured_puts_sale_before_rating(self):
        ordering = ORDERINGS[SortMode.FEATURED]

        assert ordering.index("sale_price") < ordering.index("rating DESC")


class TestSortMode:
    """Tests for sort token parsing"""

    @pytest.mark.parametrize("token,expected", [
        ("price-asc", SortMode.PRICE_ASC),
        ("price-desc", SortMode.PRICE_DESC),
        ("rating", SortMode.RATING),
        ("newest", SortMode.NEWEST),
        ("featured", SortMode.FEATURED),
        ("cheapest", SortMode.FEATURED),
        (None, SortMode.FEATURED),
    ])
    def test_parse(self, token, expected):
        assert SortMode.parse(token) is expected


class TestSearch:
    """Tests for build_search and build_suggestions"""

    def test_pattern_is_lowercased_and_wrapped(self):
        stmt = build_search("  USB ", CatalogFilters(), Dialect.SQLITE)

        assert set(stmt.params[:-1]) == {"%usb%"}

    def test_ladder_scores_descend(self):
        """Test title outranks SKU, category, description and tags"""
        stmt = build_search("usb", CatalogFilters(), Dialect.SQLITE)

        order = [stmt.text.index(f"THEN {score}") for score in (10, 9, 8, 7, 6)]
        assert order == sorted(order)
        assert "WHEN LOWER(title) LIKE ? ESCAPE '\\' THEN 10" in stmt.text

    def test_ordering(self):
        """Test relevance, then rating, then sale status"""
        stmt = build_search("usb", CatalogFilters(), Dialect.POSTGRES)

        tail = stmt.text[stmt.text.index("ORDER BY"):]
        assert tail.index("relevance_score DESC") < tail.index("rating DESC") < tail.index("sale_price")

    def test_default_limit(self):
        stmt = build_search("usb", CatalogFilters(), Dialect.POSTGRES)

        assert stmt.params[-1] == 20

    def test_offset_follows_limit(self):
        stmt = build_search("usb", CatalogFilters(offset=5), Dialect.POSTGRES, limit=5)

        assert stmt.text.endswith("LIMIT $11 OFFSET $12")
        assert stmt.params[-2:] == (5, 5)

    def test_wildcards_matched_literally(self):
        """Test % and _ in the term are escaped"""
        stmt = build_search("50%_off", CatalogFilters(), Dialect.SQLITE)

        assert stmt.params[0] == "%50\\%\\_off%"
        assert stmt.text.count("ESCAPE") == 10

    def test_filters_apply_after_match(self):
        """Test search filters bind after the match params"""
        stmt = build_search("usb", CatalogFilters(category="Accessories"), Dialect.POSTGRES, limit=5)

        assert stmt.params[-2:] == ("Accessories", 5)

    def test_suggestions_limited_columns(self):
        stmt = build_suggestions("hub", Dialect.SQLITE)

        assert stmt.text.startswith("SELECT id, title, category, price, sale_price, images, rating, ")
        assert "description" not in stmt.text
        assert stmt.params[-1] == 5


class TestOtherBuilders:
    """Tests for featured, related, by-id and categories"""

    def test_featured(self):
        stmt = build_featured(Dialect.POSTGRES)

        assert "(sale_price IS NOT NULL OR rating >= $1)" in stmt.text
        assert stmt.params == (Decimal("4.5"), 4)

    def test_related_excludes_self(self):
        stmt = build_related(3, "Electronics", Dialect.POSTGRES)

        assert "is_active = TRUE AND id != $1 AND category = $2" in stmt.text
        assert stmt.params == (3, "Electronics", 4)

    def test_product_by_id(self):
        stmt = build_product_by_id(9, Dialect.SQLITE)

        assert stmt.text == "SELECT * FROM products WHERE is_active = TRUE AND id = ?"
        assert stmt.params == (9,)

    def test_product_by_id_admin(self):
        stmt = build_product_by_id(9, Dialect.SQLITE, include_inactive=True)

        assert stmt.text == "SELECT * FROM products WHERE id = ?"

    def test_categories(self):
        stmt = build_categories(Dialect.SQLITE)

        assert "GROUP BY category ORDER BY category" in stmt.text
        assert "is_active = TRUE" in stmt.text
