"""
Seller dashboard endpoints — stats, orders, profile, banks and payout setup.

Every route requires a seller token.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import Seller
from deps import Pagination, pagination_params, require_seller
from domain.constants import TEST_RECIPIENT_CODE
from domain.responses import paginated_response, success_response
from middleware.rate_limit import rate_limit
from models import ApiModel
from services import auth_service, seller_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/seller", tags=["seller"])


class ProfileUpdateRequest(ApiModel):
    store_name: Optional[str] = Field(default=None, alias="storeName", min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber", min_length=3, max_length=30)
    address: Optional[str] = Field(default=None, max_length=500)
    categories: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)


class VerifyAccountRequest(ApiModel):
    account_number: str = Field(..., alias="accountNumber")
    bank_code: str = Field(..., alias="bankCode", min_length=1, max_length=20)


class PaymentSetupRequest(ApiModel):
    bank_code: str = Field(..., alias="bankCode", min_length=1, max_length=20)
    account_number: str = Field(..., alias="accountNumber")
    account_name: str = Field(..., alias="accountName", min_length=1, max_length=200)
    bank_name: Optional[str] = Field(default=None, alias="bankName", max_length=200)


@router.get("/stats")
async def get_stats(
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await seller_service.get_stats(db, seller_id=seller.id))


@router.get("/orders")
async def list_orders(
    status: Optional[str] = Query(default=None),
    page: Pagination = Depends(pagination_params),
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await seller_service.list_orders(
        db,
        seller_id=seller.id,
        status=status,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(orders, limit=page["limit"], offset=page["offset"], total=total)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await seller_service.get_order(db, seller_id=seller.id, order_id=order_id))


@router.put("/profile")
async def update_profile(
    request: ProfileUpdateRequest,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    seller = await seller_service.update_profile(db, seller=seller, fields=request.model_dump())
    await db.commit()
    return success_response(
        data={"message": "Profile updated successfully", "seller": auth_service.seller_profile(seller)}
    )


@router.get("/banks")
async def list_banks(_seller: Seller = Depends(require_seller)):
    result = await seller_service.list_banks()
    return success_response(data=result["banks"], meta={"total": len(result["banks"]), "mock": result["mock"]})


@router.post("/verify-account")
async def verify_account(
    request: VerifyAccountRequest,
    _seller: Seller = Depends(require_seller),
    _rate=Depends(rate_limit(max_requests=20, window_seconds=60)),
):
    result = await seller_service.verify_account(
        account_number=request.account_number,
        bank_code=request.bank_code,
    )
    return success_response(data=result)


@router.post("/payment/setup")
async def setup_payment(
    request: PaymentSetupRequest,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    seller = await seller_service.setup_payment(
        db,
        seller=seller,
        bank_code=request.bank_code,
        account_number=request.account_number,
        account_name=request.account_name,
        bank_name=request.bank_name,
    )
    await db.commit()
    message = "Payment details saved successfully"
    if seller.paystack_recipient_code == TEST_RECIPIENT_CODE:
        message += " (Test Mode)"
    return success_response(data={"message": message, "seller": auth_service.seller_profile(seller)})
