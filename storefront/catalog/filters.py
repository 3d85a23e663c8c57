"""
Catalog Filters

Optional listing dimensions and the fixed set of sort modes.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

# Rating tier token -> minimum rating
RATING_TIERS = {
    "4+": Decimal("4.0"),
    "4.5+": Decimal("4.5"),
}

ALL_CATEGORIES = "all"


class SortMode(str, Enum):
    """Catalog orderings"""
    FEATURED = "featured"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    RATING = "rating"
    NEWEST = "newest"

    @classmethod
    def parse(cls, token: Optional[str]) -> "SortMode":
        """Unknown or missing tokens fall back to featured"""
        try:
            return cls(token)
        except ValueError:
            return cls.FEATURED


@dataclass
class CatalogFilters:
    """
    Optional catalog constraints; ``None``/``False`` means unconstrained.

    ``offset`` is only honored together with ``limit``. ``include_inactive``
    is reserved for admin reads.
    """
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    rating: Optional[str] = None
    in_stock: bool = False
    on_sale: bool = False
    limit: Optional[int] = None
    offset: Optional[int] = None
    include_inactive: bool = False

    @property
    def min_rating(self) -> Optional[Decimal]:
        return RATING_TIERS.get(self.rating) if self.rating else None

    @property
    def category_filter(self) -> Optional[str]:
        if not self.category or self.category == ALL_CATEGORIES:
            return None
        return self.category
