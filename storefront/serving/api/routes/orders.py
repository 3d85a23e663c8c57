"""
Orders API Endpoints

Simulated checkout and order history. Payment is not processed; orders are
recorded as paid.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from storefront.database.connection import get_backend
from storefront.database.selector import BackendHandle
from storefront.repositories import orders as repo
from storefront.serving.api.auth import AuthUser, get_current_user

router = APIRouter()


class CheckoutItem(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1, le=100)


class CheckoutRequest(BaseModel):
    items: List[CheckoutItem] = Field(..., min_length=1)
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    payment_method: str = Field("card", pattern="^(card|paypal|cash_on_delivery)$")
    notes: Optional[str] = Field(None, max_length=1000)


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    title: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float


class OrderOut(BaseModel):
    id: int
    user_id: int
    order_number: str
    status: str
    total_amount: float
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut] = Field(default_factory=list)


class OrderResponse(BaseModel):
    success: bool
    order: OrderOut


class OrderListResponse(BaseModel):
    success: bool
    orders: List[OrderOut]
    total: int


@router.post("/checkout", response_model=OrderResponse, status_code=201)
async def checkout(
    body: CheckoutRequest,
    user: AuthUser = Depends(get_current_user),
    db: BackendHandle = Depends(get_backend),
) -> OrderResponse:
    """Place an order at current prices and reserve stock."""
    lines = [repo.CartLine(product_id=item.product_id, quantity=item.quantity) for item in body.items]
    try:
        order = await repo.checkout(
            db,
            user.id,
            lines,
            shipping_address=body.shipping_address,
            billing_address=body.billing_address,
            payment_method=body.payment_method,
            notes=body.notes,
        )
    except repo.CheckoutError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return OrderResponse(success=True, order=order)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthUser = Depends(get_current_user),
    db: BackendHandle = Depends(get_backend),
) -> OrderListResponse:
    """The caller's orders; admins see every order."""
    orders = await repo.list_orders(db, user_id=None if user.is_admin else user.id, limit=limit, offset=offset)
    return OrderListResponse(success=True, orders=orders, total=len(orders))


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user: AuthUser = Depends(get_current_user),
    db: BackendHandle = Depends(get_backend),
) -> OrderResponse:
    order = await repo.get_order(db, order_id, user_id=None if user.is_admin else user.id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderResponse(success=True, order=order)
