"""
Shared FastAPI dependencies.

Centralizes the DB session, caller resolution (user / seller / guest) and
role guards so routers import from a single place.
"""

from __future__ import annotations

from typing import Optional, TypedDict, Union

from fastapi import Cookie, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import Seller, User
from domain.enums import Role
from domain.errors import PermissionDeniedError, UnauthorizedError
from middleware.auth import decode_access_token, extract_token


class Principal(TypedDict):
    role: str
    id: Optional[int]
    account: Optional[Union[User, Seller]]


GUEST: Principal = {"role": Role.GUEST.value, "id": None, "account": None}


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


async def get_principal(
    auth_token: Optional[str] = Cookie(None, alias=settings.auth_cookie_name),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """
    Resolve the caller.

    - No token / expired / malformed token -> guest
    - Valid token for a user or seller that still exists -> that principal
    - Valid token whose account was deleted, or unknown role -> 401
    """
    token = extract_token(auth_token, authorization)
    if not token:
        return dict(GUEST)

    claims = decode_access_token(token)
    if claims is None:
        return dict(GUEST)

    role = claims.get("role")
    try:
        subject_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError("Unauthorized: Invalid token subject")

    if role == Role.SELLER.value:
        seller = await db.get(Seller, subject_id)
        if not seller:
            raise UnauthorizedError("Unauthorized: Seller not found")
        return {"role": role, "id": seller.id, "account": seller}

    if role == Role.USER.value:
        user = await db.get(User, subject_id)
        if not user:
            raise UnauthorizedError("Unauthorized: User not found")
        return {"role": role, "id": user.id, "account": user}

    raise UnauthorizedError("Unauthorized: Invalid role")


async def require_auth(principal: Principal = Depends(get_principal)) -> Principal:
    if principal["role"] == Role.GUEST.value:
        raise UnauthorizedError("Authentication required")
    return principal


async def require_user(principal: Principal = Depends(require_auth)) -> Principal:
    if principal["role"] != Role.USER.value:
        raise PermissionDeniedError("Forbidden: Only buyers can perform this action")
    return principal


async def require_seller(principal: Principal = Depends(get_principal)) -> Seller:
    """Return the authenticated Seller row; 403 for anyone else."""
    if principal["role"] != Role.SELLER.value:
        raise PermissionDeniedError("Forbidden: Only sellers can perform this action")
    return principal["account"]


def is_admin(principal: Principal) -> bool:
    account = principal.get("account")
    return principal["role"] == Role.USER.value and bool(getattr(account, "is_admin", False))
