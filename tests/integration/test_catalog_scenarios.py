"""
Integration Tests - Catalog Queries on SQLite
"""
import pytest

from storefront.catalog.filters import CatalogFilters, SortMode
from storefront.repositories import products as repo


def _ids(products):
    return [p["id"] for p in products]


class TestListing:
    """Tests for filtered, sorted listings"""

    @pytest.mark.asyncio
    async def test_electronics_price_window(self, db, seed, electronics_catalog):
        """Test category + price bounds + price-asc returns 150 then 300"""
        await seed(electronics_catalog)
        filters = CatalogFilters(category="Electronics", min_price=100, max_price=500)

        products = await repo.list_products(db, filters, SortMode.PRICE_ASC)

        assert [p["price"] for p in products] == [150.0, 300.0]
        assert {p["category"] for p in products} == {"Electronics"}

    @pytest.mark.asyncio
    async def test_price_bounds_use_effective_price(self, db, seed, product_factory):
        """Test a sale price pulls a product into or out of range"""
        ids = await seed([
            product_factory("SP-1", price=120.0, sale_price=80.0),
            product_factory("SP-2", price=90.0),
            product_factory("SP-3", price=200.0, sale_price=100.0),
        ])

        above = await repo.list_products(db, CatalogFilters(min_price=95), SortMode.PRICE_ASC)
        below = await repo.list_products(db, CatalogFilters(max_price=95), SortMode.PRICE_ASC)

        assert _ids(above) == [ids[2]]
        assert _ids(below) == [ids[0], ids[1]]
        for product in above:
            assert repo.effective_price(product) >= 95
        for product in below:
            assert repo.effective_price(product) <= 95

    @pytest.mark.asyncio
    async def test_rating_tier_and_stock(self, db, seed, product_factory):
        ids = await seed([
            product_factory("RT-1", rating=4.7, stock=0),
            product_factory("RT-2", rating=4.5, stock=5),
            product_factory("RT-3", rating=4.2, stock=5),
        ])

        top = await repo.list_products(db, CatalogFilters(rating="4.5+"), SortMode.RATING)
        stocked = await repo.list_products(db, CatalogFilters(rating="4+", in_stock=True), SortMode.RATING)

        assert _ids(top) == [ids[0], ids[1]]
        assert _ids(stocked) == [ids[1], ids[2]]

    @pytest.mark.asyncio
    async def test_on_sale_requires_lower_sale_price(self, db, seed, product_factory):
        ids = await seed([
            product_factory("OS-1", price=50.0, sale_price=40.0),
            product_factory("OS-2", price=50.0),
        ])

        products = await repo.list_products(db, CatalogFilters(on_sale=True))

        assert _ids(products) == [ids[0]]

    @pytest.mark.asyncio
    async def test_featured_sort_sale_first_then_rating(self, db, seed, product_factory):
        """Test an active sale outranks any rating"""
        ids = await seed([
            product_factory("FS-1", rating=5.0),
            product_factory("FS-2", rating=3.0, price=20.0, sale_price=15.0),
            product_factory("FS-3", rating=4.0),
        ])

        products = await repo.list_products(db, CatalogFilters(), SortMode.FEATURED)

        assert _ids(products) == [ids[1], ids[0], ids[2]]

    @pytest.mark.asyncio
    async def test_featured_ties_are_stable(self, db, seed, product_factory):
        """Test equal rating and sale status keep id order across calls"""
        ids = await seed([product_factory(f"TIE-{n}", rating=4.2) for n in range(6)])

        first = await repo.list_products(db, CatalogFilters(), SortMode.FEATURED)
        second = await repo.list_products(db, CatalogFilters(), SortMode.FEATURED)

        assert _ids(first) == ids
        assert _ids(second) == ids

    @pytest.mark.asyncio
    async def test_newest_first(self, db, seed, product_factory):
        ids = await seed([product_factory(f"NW-{n}") for n in range(3)])

        products = await repo.list_products(db, CatalogFilters(), SortMode.NEWEST)

        assert _ids(products) == list(reversed(ids))

    @pytest.mark.asyncio
    async def test_limit_and_offset(self, db, seed, product_factory):
        ids = await seed([product_factory(f"PG-{n}", price=10.0 + n) for n in range(5)])

        page = await repo.list_products(db, CatalogFilters(limit=2, offset=2), SortMode.PRICE_ASC)

        assert _ids(page) == ids[2:4]


class TestSearch:
    """Tests for relevance-ranked search"""

    @pytest.mark.asyncio
    async def test_usb_titles_rank_above_description(self, db, seed, usb_catalog):
        """Test both USB titles outrank a description-only match"""
        cable, mouse, hub = await seed(usb_catalog)

        results = await repo.search_products(db, "usb")

        assert _ids(results) == [hub, cable, mouse]
        assert results[0]["relevance_score"] == 10
        assert results[2]["relevance_score"] == 7

    @pytest.mark.asyncio
    async def test_title_beats_many_lower_matches(self, db, seed, product_factory):
        """Test the ladder is a priority, not a sum"""
        title_hit, everywhere_else = await seed([
            product_factory("LAD-1", title="Lamp Shade", rating=1.0),
            product_factory("SHADE-2", title="Window Blind", category="Shade Goods",
                            description="shade shade shade", tags=["shade"], rating=5.0),
        ])

        results = await repo.search_products(db, "shade")

        assert _ids(results) == [title_hit, everywhere_else]

    @pytest.mark.asyncio
    async def test_case_insensitive_substring(self, db, seed, product_factory):
        ids = await seed([product_factory("CI-1", title="Wireless KEYBOARD")])

        results = await repo.search_products(db, "keyBoa")

        assert _ids(results) == ids

    @pytest.mark.asyncio
    async def test_tags_are_searched(self, db, seed, product_factory):
        ids = await seed([product_factory("TG-1", title="Desk", tags=["ergonomic"])])

        results = await repo.search_products(db, "ergonomic")

        assert _ids(results) == ids
        assert results[0]["relevance_score"] == 6

    @pytest.mark.asyncio
    async def test_search_honors_filters(self, db, seed, usb_catalog):
        await seed(usb_catalog)

        results = await repo.search_products(db, "usb", CatalogFilters(rating="4.5+"))

        assert {p["title"] for p in results} == {"USB-C Hub", "Wireless Mouse"}

    @pytest.mark.asyncio
    async def test_search_pages(self, db, seed, product_factory):
        """Test the second page is the next slice, not the first again"""
        ids = await seed([product_factory(f"PGS-{n}", title=f"USB Adapter {n}") for n in range(4)])

        first = await repo.search_products(db, "usb", CatalogFilters(limit=2))
        second = await repo.search_products(db, "usb", CatalogFilters(limit=2, offset=2))

        assert _ids(first) == ids[:2]
        assert _ids(second) == ids[2:]

    @pytest.mark.asyncio
    async def test_wildcard_characters_are_literal(self, db, seed, product_factory):
        percent, _, underscore, _ = await seed([
            product_factory("WC-1", title="50% Off Lamp"),
            product_factory("WC-2", title="500 Watt Heater"),
            product_factory("WC-3", title="USB_C Hub"),
            product_factory("WC-4", title="USBXC Dock"),
        ])

        assert _ids(await repo.search_products(db, "50%")) == [percent]
        assert _ids(await repo.search_products(db, "usb_c")) == [underscore]

    @pytest.mark.asyncio
    async def test_suggestions(self, db, seed, usb_catalog):
        """Test suggestion entries carry the effective price and first image"""
        usb_catalog[0].update(sale_price=5.0, price=8.0, images=["cable.jpg", "cable-2.jpg"])
        cable, _, hub = await seed(usb_catalog)

        suggestions = await repo.suggest_products(db, "usb")

        assert [s["id"] for s in suggestions] == [hub, cable]
        assert suggestions[1]["price"] == 5.0
        assert suggestions[1]["image"] == "cable.jpg"
        assert suggestions[0]["type"] == "product"


class TestSoftDelete:
    """Tests for soft-delete exclusion across catalog paths"""

    @pytest.mark.asyncio
    async def test_product_seven_hidden_everywhere(self, db, seed, product_factory):
        """Test a deactivated product never reaches catalog reads"""
        ids = await seed([
            product_factory(f"SD-{n}", title=f"Gadget {n}", category="Gadgets", rating=4.8)
            for n in range(1, 9)
        ])
        seven = ids[6]
        assert seven == 7

        assert await repo.soft_delete_product(db, seven) is True

        listing = await repo.list_products(db, CatalogFilters())
        by_category = await repo.list_products(db, CatalogFilters(category="Gadgets"))
        search = await repo.search_products(db, "gadget")
        featured = await repo.featured_products(db, limit=20)
        related = await repo.related_products(db, ids[0], limit=20)
        suggestions = await repo.suggest_products(db, "gadget", limit=20)

        for products in (listing, by_category, search, featured, related, suggestions):
            assert seven not in _ids(products)
        assert await repo.get_product(db, seven) is None

        raw = await db.query("SELECT is_active FROM products WHERE id = ?", [seven])
        assert raw.rows == [{"is_active": 0}]

        admin_view = await repo.get_product(db, seven, include_inactive=True)
        assert admin_view["is_active"] is False

    @pytest.mark.asyncio
    async def test_update_ignores_inactive(self, db, seed, product_factory):
        (product_id,) = await seed([product_factory("UPD-1")])
        await repo.soft_delete_product(db, product_id)

        updated = await repo.update_product(db, product_id, product_factory("UPD-1", title="Revived"))

        assert updated is False


class TestOtherReads:
    """Tests for featured, related and categories"""

    @pytest.mark.asyncio
    async def test_featured_selection(self, db, seed, product_factory):
        ids = await seed([
            product_factory("FT-1", rating=4.9),
            product_factory("FT-2", rating=3.5, price=30.0, sale_price=20.0),
            product_factory("FT-3", rating=4.0),
        ])

        products = await repo.featured_products(db)

        assert _ids(products) == [ids[1], ids[0]]

    @pytest.mark.asyncio
    async def test_related_same_category(self, db, seed, product_factory):
        ids = await seed([
            product_factory("RL-1", category="Audio"),
            product_factory("RL-2", category="Audio", rating=4.9),
            product_factory("RL-3", category="Video"),
        ])

        related = await repo.related_products(db, ids[0])

        assert _ids(related) == [ids[1]]

    @pytest.mark.asyncio
    async def test_related_missing_product(self, db):
        assert await repo.related_products(db, 999) is None

    @pytest.mark.asyncio
    async def test_categories(self, db, seed, electronics_catalog):
        await seed(electronics_catalog)

        categories = await repo.list_categories(db)

        assert categories == [
            {"category": "Electronics", "product_count": 3},
            {"category": "Home", "product_count": 2},
        ]
