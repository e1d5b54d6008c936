"""
Account endpoints — buyer and seller signup/login/logout.

Login returns the access token in the body and also sets it as the
`authToken` httpOnly cookie for browser clients.
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from domain.responses import success_response
from middleware.rate_limit import rate_limit
from models import ApiModel
from services import auth_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["auth"])


class SignupRequest(ApiModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class LoginRequest(ApiModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class SellerSignupRequest(ApiModel):
    store_name: str = Field(..., alias="storeName", min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=255)
    phone_number: str = Field(..., alias="phoneNumber", min_length=3, max_length=30)
    address: str = Field(..., min_length=1, max_length=500)
    categories: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        max_age=settings.jwt_access_ttl_minutes * 60,
    )


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    body: SignupRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    user = await auth_service.register_user(
        db, username=body.username, email=body.email, password=body.password
    )
    await db.commit()
    return success_response(
        data={"message": "User registered successfully", "user": auth_service.user_profile(user)}
    )


@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    user, token = await auth_service.login_user(db, email=body.email, password=body.password)
    _set_auth_cookie(response, token)
    return success_response(
        data={
            "message": "Login successful",
            "token": token,
            "expiresInSeconds": settings.jwt_access_ttl_minutes * 60,
            "user": auth_service.user_profile(user),
        }
    )


@router.post("/seller-signup", status_code=status.HTTP_201_CREATED)
async def seller_signup(
    body: SellerSignupRequest,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    seller = await auth_service.register_seller(
        db,
        store_name=body.store_name,
        email=body.email,
        phone_number=body.phone_number,
        address=body.address,
        categories=body.categories,
        password=body.password,
    )
    await db.commit()
    return success_response(
        data={"message": "Seller registered successfully", "seller": auth_service.seller_profile(seller)}
    )


@router.post("/seller-login")
async def seller_login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    seller, token = await auth_service.login_seller(db, email=body.email, password=body.password)
    _set_auth_cookie(response, token)
    return success_response(
        data={
            "message": "Login successful",
            "token": token,
            "expiresInSeconds": settings.jwt_access_ttl_minutes * 60,
            "seller": auth_service.seller_profile(seller),
        }
    )


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(settings.auth_cookie_name)
    return success_response(data={"message": "Logged out successfully"})
