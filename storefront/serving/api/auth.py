"""
Bearer Token Authentication

Tokens are HS256 JWTs carrying the user id, username, email and role.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt
from pydantic import BaseModel

from storefront.config.settings import SecuritySettings, Settings, get_settings

logger = structlog.get_logger(__name__)


class AuthUser(BaseModel):
    """Identity carried by a verified token"""
    id: int
    username: str
    email: str
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_token(user: Mapping[str, Any], security: SecuritySettings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(hours=security.jwt_expiration_hours)
    claims = {
        "id": user["id"],
        "username": user["username"],
        "email": user["email"],
        "role": user.get("role") or "customer",
        "exp": expire,
    }
    return jwt.encode(claims, security.jwt_secret_key.get_secret_value(), algorithm=security.jwt_algorithm)


def decode_token(token: str, security: SecuritySettings) -> Dict[str, Any]:
    """
    Verify signature and expiry.

    Raises:
        JWTError: If the token is invalid or expired
    """
    return jwt.decode(token, security.jwt_secret_key.get_secret_value(), algorithms=[security.jwt_algorithm])


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_current_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_app_settings),
) -> AuthUser:
    if not authorization:
        raise HTTPException(status_code=401, detail="Access token required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    try:
        payload = decode_token(token.strip(), settings.security)
        return AuthUser(
            id=payload["id"],
            username=payload["username"],
            email=payload["email"],
            role=payload.get("role", "customer"),
        )
    except (JWTError, KeyError, ValueError) as e:
        logger.info("Token rejected", error=str(e))
        raise HTTPException(status_code=403, detail="Invalid or expired token")


def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_owner_or_admin(user_id: int, user: AuthUser = Depends(get_current_user)) -> AuthUser:
    """Path ``user_id`` must be the caller's own id unless the caller is an admin"""
    if not user.is_admin and user.id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return user
