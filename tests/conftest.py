"""
Test Suite Configuration
"""
from typing import AsyncGenerator, Dict, List

import pytest
import pytest_asyncio

from storefront.config.settings import AdminSeedSettings, SQLiteSettings, Settings
from storefront.database.adapters.sqlite import SQLiteAdapter
from storefront.database.schema import initialize_schema
from storefront.database.selector import BackendHandle
from storefront.repositories.products import create_product


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings backed by a throwaway SQLite file"""
    return Settings(
        app_env="testing",
        debug=True,
        sqlite=SQLiteSettings(path=str(tmp_path / "storefront-test.db")),
        admin=AdminSeedSettings(username="admin", email="admin@storefront.com", password="admin123"),
    )


@pytest_asyncio.fixture
async def sqlite_adapter(test_settings) -> AsyncGenerator[SQLiteAdapter, None]:
    """Open SQLite adapter with schema and admin seed applied"""
    adapter = SQLiteAdapter(test_settings.sqlite)
    await adapter.open()
    await initialize_schema(adapter, test_settings.admin)
    yield adapter
    await adapter.close()


@pytest_asyncio.fixture
async def db(sqlite_adapter) -> BackendHandle:
    """Handle bound to the SQLite backend, as the selector would return on fallback"""
    return BackendHandle(adapter=sqlite_adapter, fallback_reason="connection refused")


def _product(sku: str, **overrides) -> Dict:
    product = {
        "title": f"Product {sku}",
        "description": None,
        "price": 10.0,
        "sale_price": None,
        "sku": sku,
        "stock": 10,
        "category": "General",
        "tags": [],
        "rating": 4.0,
        "images": [],
        "attributes": {},
    }
    product.update(overrides)
    return product


@pytest.fixture
def electronics_catalog() -> List[Dict]:
    """Five products priced 50..600, three of them Electronics"""
    return [
        _product("EL-050", title="Budget Earbuds", price=50.0, category="Electronics"),
        _product("EL-150", title="Bluetooth Speaker", price=150.0, category="Electronics"),
        _product("EL-300", title="Noise Cancelling Headphones", price=300.0, category="Electronics"),
        _product("HM-450", title="Standing Lamp", price=450.0, category="Home"),
        _product("HM-600", title="Espresso Machine", price=600.0, category="Home"),
    ]


@pytest.fixture
def usb_catalog() -> List[Dict]:
    """Titles from the storefront search scenario plus a description-only match"""
    return [
        _product("ACC-001", title="USB Cable", category="Accessories", rating=4.0),
        _product("ACC-002", title="Wireless Mouse", category="Accessories", rating=4.8,
                 description="Ships with a USB receiver"),
        _product("ACC-003", title="USB-C Hub", category="Accessories", rating=4.6),
    ]


@pytest.fixture
def product_factory():
    """Build a product payload with sensible defaults"""
    return _product


@pytest.fixture
def seed(db):
    """Insert products in order and return their ids"""
    async def _seed(products: List[Dict]) -> List[int]:
        return [await create_product(db, product) for product in products]
    return _seed
