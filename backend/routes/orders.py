"""
Order endpoints — checkout, Paystack confirmation (webhook + manual) and
delivery confirmation with seller payouts.

The webhook signature is checked over the raw body before anything is
parsed or written.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Principal, get_principal, is_admin, require_auth, require_user
from domain.constants import WEBHOOK_SIGNATURE_HEADER
from domain.enums import PaymentMethod, Role
from domain.errors import DomainError, UnauthorizedError, ValidationError
from domain.responses import success_response
from models import ApiModel, LineItem, ShippingInfo
from services import order_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["orders"])


class CreateOrderRequest(ApiModel):
    shipping_info: ShippingInfo = Field(..., alias="shippingInfo")
    items: list[LineItem] | None = None
    total_amount: Optional[float] = Field(default=None, alias="totalAmount", ge=0)
    session_id: Optional[str] = Field(default=None, alias="sessionId", max_length=64)
    payment_method: PaymentMethod = Field(PaymentMethod.CARD, alias="paymentMethod")


@router.post("/create-order", status_code=status.HTTP_201_CREATED)
async def create_order(
    body: CreateOrderRequest,
    request: Request,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    account = principal["account"] if principal["role"] == Role.USER.value else None
    result = await order_service.create_order_and_initialize_payment(
        db,
        user_id=account.id if account else None,
        user_email=account.email if account else None,
        session_id=None if account else body.session_id,
        shipping_info=body.shipping_info.model_dump(),
        items=[i.as_dict() for i in body.items] if body.items else None,
        total_amount=body.total_amount,
        payment_method=body.payment_method.value,
        origin=request.headers.get("origin"),
    )
    await db.commit()

    if not result["paymentRequired"]:
        message = "Order created successfully (Pay on Delivery)"
    elif result["hasPriceChanges"]:
        message = "Order created with updated prices"
    else:
        message = "Order created successfully"
    return success_response(data={"message": message, **result})


@router.post("/webhook/paystack")
async def paystack_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Paystack webhook callback.

    Always verifies the signature (fails closed when no secret is set).
    """
    body = await request.body()
    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADER, "")

    if not order_service.verify_webhook_signature(body, signature):
        raise UnauthorizedError("Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError("Invalid JSON payload")

    try:
        result = await order_service.process_webhook(db, payload)
        await db.commit()
    except DomainError as e:
        logger.error(f"Webhook processing failed: {e.message}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return success_response(data=result)


@router.get("/verify-payment-handler")
async def verify_payment(
    reference: Optional[str] = Query(default=None),
    order_id: Optional[str] = Query(default=None, alias="orderId"),
    db: AsyncSession = Depends(get_db),
):
    """Manual confirmation used by the payment callback page."""
    if not reference or not order_id:
        raise ValidationError("Reference and order ID are required")
    try:
        order_pk = int(order_id)
    except ValueError:
        raise ValidationError("Invalid order ID format")

    try:
        order = await order_service.verify_transaction(db, reference=reference, order_id=order_pk)
    except DomainError as e:
        # Any verification failure, unknown order included, is a bad request here
        raise ValidationError(e.message)
    await db.commit()

    return success_response(
        data={"message": "Payment verified successfully", "order": order_service.serialize_order(order)}
    )


@router.get("/orders")
async def list_orders(
    principal: Principal = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
):
    orders = await order_service.list_orders(db, role=principal["role"], account_id=principal["id"])
    return success_response(data=orders, meta={"total": len(orders)})


@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    principal: Principal = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order_details(
        db,
        order_id=order_id,
        role=principal["role"],
        account_id=principal["id"],
        admin=is_admin(principal),
    )
    return success_response(data=order)


@router.post("/orders/{order_id}/confirm-delivery")
async def confirm_delivery(
    order_id: int,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """200 when every seller was paid, 207 when some payouts failed."""
    all_paid, result = await order_service.confirm_delivery(
        db,
        order_id=order_id,
        role=principal["role"],
        account_id=principal["id"],
        admin=is_admin(principal),
    )
    await db.commit()

    if not all_paid:
        return JSONResponse(status_code=status.HTTP_207_MULTI_STATUS, content=success_response(data=result))
    return success_response(data=result)
