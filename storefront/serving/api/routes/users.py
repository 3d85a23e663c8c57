"""
Users API Endpoints

Registration, login and account management.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr, Field

from storefront.config.settings import Settings
from storefront.database.connection import get_backend
from storefront.database.errors import DuplicateRecordError
from storefront.database.selector import BackendHandle
from storefront.repositories import users as repo
from storefront.serving.api.auth import (
    AuthUser,
    create_token,
    get_app_settings,
    get_current_user,
    require_admin,
    require_owner_or_admin,
)

router = APIRouter()

DUPLICATE_ACCOUNT = "Username or email already exists"


class UserOut(BaseModel):
    """Public user fields"""
    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = "customer"
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=50)
    postal_code: Optional[str] = Field(None, max_length=10)
    country: Optional[str] = Field(None, max_length=50)


class LoginRequest(BaseModel):
    """``username`` accepts a username or an email"""
    username: str
    password: str


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=50)
    postal_code: Optional[str] = Field(None, max_length=10)
    country: Optional[str] = Field(None, max_length=50)
    role: Optional[str] = Field(None, pattern="^(customer|admin)$")
    is_active: Optional[bool] = None


class AuthResponse(BaseModel):
    success: bool
    message: str
    user: UserOut
    token: str


class UserResponse(BaseModel):
    success: bool
    user: UserOut
    message: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class UserListResponse(BaseModel):
    success: bool
    users: List[UserOut]
    pagination: Pagination


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: BackendHandle = Depends(get_backend),
    settings: Settings = Depends(get_app_settings),
) -> AuthResponse:
    """Create a customer account and sign it in."""
    try:
        user = await repo.register_user(db, body.model_dump())
    except DuplicateRecordError:
        raise HTTPException(status_code=400, detail=DUPLICATE_ACCOUNT)
    return AuthResponse(
        success=True,
        message="User created successfully",
        user=user,
        token=create_token(user, settings.security),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    db: BackendHandle = Depends(get_backend),
    settings: Settings = Depends(get_app_settings),
) -> AuthResponse:
    """Exchange credentials for a bearer token."""
    user = await repo.authenticate(db, body.username, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return AuthResponse(
        success=True,
        message="Login successful",
        user=user,
        token=create_token(user, settings.security),
    )


@router.get("/profile", response_model=UserResponse)
async def profile(
    current: AuthUser = Depends(get_current_user),
    db: BackendHandle = Depends(get_backend),
) -> UserResponse:
    """The caller's own account."""
    user = await repo.get_user(db, current.id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(success=True, user=user)


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> UserListResponse:
    """Paginated user list (admin)."""
    users, total = await repo.list_users(db, page=page, limit=limit)
    return UserListResponse(
        success=True,
        users=users,
        pagination=Pagination(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit),
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    _: AuthUser = Depends(require_owner_or_admin),
    db: BackendHandle = Depends(get_backend),
) -> UserResponse:
    user = await repo.get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(success=True, user=user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    body: UserUpdate,
    current: AuthUser = Depends(require_owner_or_admin),
    db: BackendHandle = Depends(get_backend),
) -> UserResponse:
    """Partial update; only admins may change role or active status."""
    updates = body.model_dump(exclude_none=True)
    if not current.is_admin and ({"role", "is_active"} & updates.keys()):
        raise HTTPException(status_code=403, detail="Admin access required")
    try:
        user = await repo.update_user(db, user_id, updates)
    except repo.NoUpdatableFieldsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateRecordError:
        raise HTTPException(status_code=400, detail=DUPLICATE_ACCOUNT)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(success=True, user=user, message="User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    _: AuthUser = Depends(require_admin),
    db: BackendHandle = Depends(get_backend),
) -> dict:
    """Deactivate an account (admin)."""
    if not await repo.soft_delete_user(db, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "message": "User deleted successfully"}
