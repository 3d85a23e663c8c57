"""
Products API Endpoints

Public catalog browsing and search, plus admin product management.
Catalog reads answer with ``{success, products, error?}``; a database
failure degrades to an empty list instead of an unstructured error.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field, model_validator

from storefront.catalog.filters import CatalogFilters, SortMode
from storefront.database.connection import get_backend
from storefront.database.errors import (
    ConnectivityError,
    DatabaseError,
    DuplicateRecordError,
    TemporarilyUnavailableError,
)
from storefront.database.selector import BackendHandle
from storefront.repositories import products as repo
from storefront.serving.api.auth import AuthUser, require_admin

logger = structlog.get_logger(__name__)
router = APIRouter()


class ProductOut(BaseModel):
    """Catalog product"""
    id: int
    title: str
    description: Optional[str] = None
    price: float
    sale_price: Optional[float] = None
    sku: str
    stock: int = 0
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    rating: float = 0.0
    images: List[str] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    relevance_score: Optional[float] = None


class ProductListResponse(BaseModel):
    """Catalog envelope"""
    success: bool
    products: List[ProductOut]
    total: int
    query: Optional[str] = None
    error: Optional[str] = None


class ProductResponse(BaseModel):
    success: bool
    product: ProductOut


class Suggestion(BaseModel):
    id: int
    title: str
    category: Optional[str] = None
    price: Optional[float] = None
    image: Optional[str] = None
    type: str = "product"


class SuggestionResponse(BaseModel):
    success: bool
    suggestions: List[Suggestion]
    error: Optional[str] = None


class CategoryCount(BaseModel):
    category: str
    product_count: int


class CategoryResponse(BaseModel):
    success: bool
    categories: List[CategoryCount]
    error: Optional[str] = None


class ProductIn(BaseModel):
    """Admin create/replace payload"""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    sku: str = Field(..., min_length=1, max_length=50)
    stock: int = Field(0, ge=0)
    category: Optional[str] = Field(None, max_length=100)
    tags: List[str] = Field(default_factory=list)
    rating: float = Field(0.0, ge=0, le=5)
    images: List[str] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_sale_price(self) -> "ProductIn":
        if self.sale_price is not None and self.sale_price >= self.price:
            raise ValueError("sale_price must be lower than price")
        return self


class ProductWriteResponse(BaseModel):
    success: bool
    message: str
    productId: Optional[int] = None


def _degrade(response: Response, error: DatabaseError, operation: str) -> str:
    """Set the failure status for a catalog read and return the client message"""
    if isinstance(error, (TemporarilyUnavailableError, ConnectivityError)):
        response.status_code = 503
        message = "Database temporarily unavailable"
    else:
        response.status_code = 500
        message = "Internal server error"
    logger.error("Catalog read failed", operation=operation, error=str(error), error_type=type(error).__name__)
    return message


def catalog_filters(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    rating: Optional[str] = None,
    in_stock: bool = Query(False, alias="inStock"),
    on_sale: bool = Query(False, alias="onSale"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: Optional[int] = Query(None, ge=0),
) -> CatalogFilters:
    """Query string -> filters"""
    return CatalogFilters(
        category=category,
        min_price=min_price,
        max_price=max_price,
        rating=rating,
        in_stock=in_stock,
        on_sale=on_sale,
        limit=limit,
        offset=offset,
    )


@router.get("", response_model=ProductListResponse)
async def list_products(
    response: Response,
    filters: CatalogFilters = Depends(catalog_filters),
    sort_by: Optional[str] = Query("featured", alias="sortBy"),
    db: BackendHandle = Depends(get_backend),
) -> ProductListResponse:
    """List active products with optional filters and sorting."""
    try:
        products = await repo.list_products(db, filters, SortMode.parse(sort_by))
    except DatabaseError as e:
        return ProductListResponse(success=False, products=[], total=0, error=_degrade(response, e, "list"))
    return ProductListResponse(success=True, products=products, total=len(products))


@router.get("/search", response_model=ProductListResponse)
async def search_products(
    response: Response,
    q: Optional[str] = None,
    filters: CatalogFilters = Depends(catalog_filters),
    sort_by: Optional[str] = Query("featured", alias="sortBy"),
    db: BackendHandle = Depends(get_backend),
) -> ProductListResponse:
    """
    Substring search ranked by relevance.

    An empty query behaves like the plain listing. At most 20 results
    unless ``limit`` is given.
    """
    if not q or not q.strip():
        return await list_products(response, filters, sort_by, db)
    try:
        products = await repo.search_products(db, q, filters, limit=filters.limit or 20)
    except DatabaseError as e:
        return ProductListResponse(success=False, products=[], total=0, query=q, error=_degrade(response, e, "search"))
    return ProductListResponse(success=True, products=products, total=len(products), query=q)


@router.get("/search/suggestions", response_model=SuggestionResponse)
async def search_suggestions(
    response: Response,
    q: Optional[str] = None,
    limit: int = Query(5, ge=1, le=20),
    db: BackendHandle = Depends(get_backend),
) -> SuggestionResponse:
    """Suggestions for queries of at least two characters."""
    if not q or len(q.strip()) < 2:
        return SuggestionResponse(success=True, suggestions=[])
    try:
        suggestions = await repo.suggest_products(db, q, limit=limit)
    except DatabaseError as e:
        return SuggestionResponse(success=False, suggestions=[], error=_degrade(response, e, "suggestions"))
    return SuggestionResponse(success=True, suggestions=suggestions)


@router.get("/featured", response_model=ProductListResponse)
async def featured_products(
    response: Response,
    limit: int = Query(4, ge=1, le=50),
    db: BackendHandle = Depends(get_backend),
) -> ProductListResponse:
    """Products on sale or rated 4.5+."""
    try:
        products = await repo.featured_products(db, limit=limit)
    except DatabaseError as e:
        return ProductListResponse(success=False, products=[], total=0, error=_degrade(response, e, "featured"))
    return ProductListResponse(success=True, products=products, total=len(products))


@router.get("/categories", response_model=CategoryResponse)
async def list_categories(
    response: Response,
    db: BackendHandle = Depends(get_backend),
) -> CategoryResponse:
    """List active categories with product counts."""
    try:
        categories = await repo.list_categories(db)
    except DatabaseError as e:
        return CategoryResponse(success=False, categories=[], error=_degrade(response, e, "categories"))
    return CategoryResponse(success=True, categories=categories)


@router.get("/admin", response_model=ProductListResponse)
async def admin_list_products(
    filters: CatalogFilters = Depends(catalog_filters),
    include_inactive: bool = Query(False, alias="includeInactive"),
    sort_by: Optional[str] = Query("newest", alias="sortBy"),
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> ProductListResponse:
    """Admin listing; soft-deleted products only with includeInactive=true."""
    filters.include_inactive = include_inactive
    products = await repo.list_products(db, filters, SortMode.parse(sort_by))
    return ProductListResponse(success=True, products=products, total=len(products))


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: BackendHandle = Depends(get_backend),
) -> ProductResponse:
    """Get an active product."""
    product = await repo.get_product(db, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductResponse(success=True, product=product)


@router.get("/{product_id}/related", response_model=ProductListResponse)
async def related_products(
    product_id: int,
    limit: int = Query(4, ge=1, le=20),
    db: BackendHandle = Depends(get_backend),
) -> ProductListResponse:
    """Other products from the same category."""
    products = await repo.related_products(db, product_id, limit=limit)
    if products is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductListResponse(success=True, products=products, total=len(products))


@router.post("", response_model=ProductWriteResponse, status_code=201)
async def create_product(
    body: ProductIn,
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> ProductWriteResponse:
    """Create a product."""
    try:
        product_id = await repo.create_product(db, body.model_dump())
    except DuplicateRecordError:
        raise HTTPException(status_code=400, detail="SKU already exists")
    return ProductWriteResponse(success=True, message="Product created successfully", productId=product_id)


@router.put("/{product_id}", response_model=ProductWriteResponse)
async def update_product(
    product_id: int,
    body: ProductIn,
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> ProductWriteResponse:
    """Replace an active product."""
    try:
        updated = await repo.update_product(db, product_id, body.model_dump())
    except DuplicateRecordError:
        raise HTTPException(status_code=400, detail="SKU already exists")
    if not updated:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductWriteResponse(success=True, message="Product updated successfully", productId=product_id)


@router.delete("/{product_id}", response_model=ProductWriteResponse)
async def delete_product(
    product_id: int,
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> ProductWriteResponse:
    """Soft-delete a product."""
    if not await repo.soft_delete_product(db, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductWriteResponse(success=True, message="Product deleted successfully", productId=product_id)
