"""
Analytics API Endpoints

Public event tracking for the storefront frontend and admin reporting.
"""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field

from storefront.database.connection import get_backend
from storefront.database.selector import BackendHandle
from storefront.repositories import analytics as repo
from storefront.serving.api.auth import AuthUser, require_admin

router = APIRouter()

EventType = Literal["product_view", "cart_add", "search", "filter_use", "page_view"]


class TrackEventRequest(BaseModel):
    event_type: EventType
    product_id: Optional[int] = None
    category: Optional[str] = Field(None, max_length=100)
    search_query: Optional[str] = Field(None, max_length=500)
    filter_data: Optional[Dict[str, Any]] = None


class TrackEventResponse(BaseModel):
    success: bool
    event_id: int
    timestamp: Optional[datetime] = None


@router.post("/track", response_model=TrackEventResponse)
async def track_event(
    body: TrackEventRequest,
    request: Request,
    session_id: Optional[str] = Header(None, alias="session-id"),
    user_agent: Optional[str] = Header(None),
    db: BackendHandle = Depends(get_backend),
) -> TrackEventResponse:
    """Record a frontend event; no authentication required."""
    event = body.model_dump()
    event.update(
        session_id=session_id,
        user_agent=user_agent,
        ip_address=request.client.host if request.client else None,
    )
    stored = await repo.track_event(db, event)
    return TrackEventResponse(success=True, event_id=stored["id"], timestamp=stored.get("created_at"))


@router.get("/dashboard")
async def dashboard(
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> Dict[str, Any]:
    """Aggregated storefront activity (admin)."""
    return {
        "success": True,
        "data": await repo.dashboard(db),
        "generated_at": repo.utc_now(),
    }


@router.get("/products/{product_id}")
async def product_analytics(
    product_id: int,
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> Dict[str, Any]:
    """Views, cart adds and recent events of one product (admin)."""
    result = await repo.product_analytics(db, product_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, **result}


@router.get("/search")
async def search_analytics(
    period: str = Query(repo.DEFAULT_SEARCH_PERIOD, pattern="^(24h|7d|30d)$"),
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> Dict[str, Any]:
    """Most frequent searches over a period (admin)."""
    return {
        "success": True,
        "period": period,
        "searches": await repo.search_analytics(db, period),
        "generated_at": repo.utc_now(),
    }
