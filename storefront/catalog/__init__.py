"""Catalog listing, search and suggestion statements"""

from storefront.catalog.filters import RATING_TIERS, CatalogFilters, SortMode
from storefront.catalog.query_builder import (
    build_categories,
    build_featured,
    build_listing,
    build_product_by_id,
    build_related,
    build_search,
    build_suggestions,
)

__all__ = [
    "CatalogFilters",
    "RATING_TIERS",
    "SortMode",
    "build_categories",
    "build_featured",
    "build_listing",
    "build_product_by_id",
    "build_related",
    "build_search",
    "build_suggestions",
]
