"""
Cart endpoints — owned by the logged-in buyer, else by a guest sessionId.

Guests that add or sync without a sessionId get one generated; it is
returned as `sessionId` and must be sent back on later calls.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Principal, get_principal
from domain.enums import Role
from domain.responses import success_response
from models import ApiModel, LineItem
from services import cart_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cart", tags=["cart"])


class CartAddRequest(ApiModel):
    product_id: int = Field(..., alias="productId", gt=0)
    quantity: int = Field(1, ge=1)
    session_id: Optional[str] = Field(default=None, alias="sessionId", max_length=64)


class CartUpdateRequest(ApiModel):
    product_id: int = Field(..., alias="productId", gt=0)
    quantity: int = Field(..., ge=1)
    session_id: Optional[str] = Field(default=None, alias="sessionId", max_length=64)


class CartSyncRequest(ApiModel):
    items: list[LineItem] = Field(default_factory=list)
    session_id: Optional[str] = Field(default=None, alias="sessionId", max_length=64)


def _owner(principal: Principal, session_id: Optional[str]) -> tuple[Optional[int], Optional[str]]:
    """Buyers own carts by user id; everyone else by session id."""
    if principal["role"] == Role.USER.value:
        return principal["id"], None
    return None, session_id


@router.post("/add")
async def add_to_cart(
    request: CartAddRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    user_id, session_id = _owner(principal, request.session_id)
    cart, session_id = await cart_service.add_to_cart(
        db,
        user_id=user_id,
        session_id=session_id,
        product_id=request.product_id,
        quantity=request.quantity,
    )
    await db.commit()
    return success_response(
        data={
            "message": "Item added to cart",
            "cart": cart_service.serialize_cart(cart),
            "sessionId": session_id,
        }
    )


@router.put("/update")
async def update_cart_item(
    request: CartUpdateRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    user_id, session_id = _owner(principal, request.session_id)
    cart = await cart_service.update_cart_item(
        db,
        user_id=user_id,
        session_id=session_id,
        product_id=request.product_id,
        quantity=request.quantity,
    )
    await db.commit()
    return success_response(data={"message": "Cart updated", "cart": cart_service.serialize_cart(cart)})


@router.delete("/remove/{product_id}")
async def remove_cart_item(
    product_id: int,
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    user_id, session_id = _owner(principal, session_id)
    cart = await cart_service.remove_cart_item(
        db, user_id=user_id, session_id=session_id, product_id=product_id
    )
    await db.commit()
    message = "Item removed from cart" if cart else "Cart cleared"
    return success_response(data={"message": message, "cart": cart_service.serialize_cart(cart)})


@router.get("")
async def get_cart(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    user_id, session_id = _owner(principal, session_id)
    cart = await cart_service.get_cart(db, user_id=user_id, session_id=session_id)
    # Reads can clamp or prune lines, so persist whatever changed
    await db.commit()
    return success_response(data=cart_service.serialize_cart(cart))


@router.post("/sync")
async def sync_cart(
    request: CartSyncRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    user_id, session_id = _owner(principal, request.session_id)
    cart, session_id, has_price_changes = await cart_service.sync_cart(
        db,
        user_id=user_id,
        session_id=session_id,
        items=[i.as_dict() for i in request.items],
    )
    await db.commit()
    return success_response(
        data={
            "message": "Cart synced",
            "cart": cart_service.serialize_cart(cart),
            "sessionId": session_id,
            "hasPriceChanges": has_price_changes,
        }
    )
