"""
Order service — checkout, Paystack payment confirmation and delivery payouts.

Lifecycle (Order.payment_status):
    pending ──verify / pay-on-delivery──> hold ──all payouts ok──> paid
    (failed is terminal and never entered automatically)

Confirmation arrives two ways, the signed webhook and the manual polling
endpoint. Both funnel into verify_transaction(), which is idempotent so the
second arrival is a no-op.
"""

import hashlib
import hmac
import json
import logging
import time
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import settings
from db_models import Order, OrderItem, Product
from domain.constants import CHARGE_SUCCESS_EVENT, MIN_CHARGE_KOBO, ORDER_REFERENCE_PREFIX
from domain.enums import PaymentMethod, PaymentStatus, Role
from domain.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    PaymentGatewayError,
    PermissionDeniedError,
    ValidationError,
)
from exceptions import PaystackError
from paystack_client import paystack_client
from services import cart_service, payout_service, product_service

logger = logging.getLogger(__name__)

SHIPPING_FIELDS = ("first_name", "last_name", "email", "phone", "address", "country", "state", "city")

_SETTLED = (PaymentStatus.HOLD.value, PaymentStatus.PAID.value)


# ════════════════════════════════════════════════════════════════════
# Loading / serialization
# ════════════════════════════════════════════════════════════════════


def order_query():
    return select(Order).options(
        selectinload(Order.items).selectinload(OrderItem.product).selectinload(Product.seller)
    )


async def get_order(db: AsyncSession, order_id: int) -> Order | None:
    res = await db.execute(
        order_query().where(Order.id == order_id).execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_order_by_reference(db: AsyncSession, reference: str) -> Order | None:
    res = await db.execute(
        order_query().where(Order.paystack_reference == reference).execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


def serialize_order(order: Order, *, seller_id: Optional[int] = None) -> dict:
    """Order with product details embedded; seller_id restricts lines to that seller."""
    items = [i for i in order.items if seller_id is None or i.seller_id == seller_id]
    return {
        "id": order.id,
        "user_id": order.user_id,
        "session_id": order.session_id,
        "shipping_info": order.shipping,
        "items": [
            {
                "product_id": i.product_id,
                "seller_id": i.seller_id,
                "quantity": i.quantity,
                "price": i.price,
                "product": {
                    "title": i.product.title,
                    "images": i.product.image_list,
                    "price": i.product.price,
                } if i.product else None,
            }
            for i in items
        ],
        "total_amount": order.total_amount,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "paystack_reference": order.paystack_reference,
        "payment_confirmed_at": order.payment_confirmed_at.isoformat() if order.payment_confirmed_at else None,
        "seller_paid_at": order.seller_paid_at.isoformat() if order.seller_paid_at else None,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


# ════════════════════════════════════════════════════════════════════
# Checkout
# ════════════════════════════════════════════════════════════════════


def _check_shipping(shipping_info: dict | None) -> dict:
    shipping_info = shipping_info or {}
    missing = [f for f in SHIPPING_FIELDS if not str(shipping_info.get(f) or "").strip()]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})
    return {f: str(shipping_info[f]).strip() for f in SHIPPING_FIELDS}


async def _enter_hold(db: AsyncSession, order: Order) -> None:
    """Move an order to hold and take its quantities out of inventory."""
    order.payment_status = PaymentStatus.HOLD.value
    order.payment_confirmed_at = datetime.utcnow()

    for item in order.items:
        product = item.product
        if product is None:
            continue
        product.stock = max(0, product.stock - item.quantity)
        product.sales = (product.sales or 0) + item.quantity

    await db.flush()
    await cart_service.clear_cart(db, user_id=order.user_id, session_id=order.session_id)


async def create_order_and_initialize_payment(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    user_email: Optional[str],
    session_id: Optional[str],
    shipping_info: dict,
    items: list[dict] | None,
    total_amount: Optional[float],
    payment_method: str,
    origin: Optional[str],
) -> dict:
    """
    Create an order from the supplied lines (or the caller's cart) and start payment.

    items: [{product_id:int, quantity:int, price:float|None}]

    Every line is re-priced from the live product; the charged total is the
    recomputed one. Missing products and stock shortfalls block the order.
    """
    if not user_id and not session_id:
        raise ValidationError("Session ID required for guest checkout")

    shipping = _check_shipping(shipping_info)

    try:
        method = PaymentMethod(payment_method or PaymentMethod.CARD.value)
    except ValueError:
        raise ValidationError(f"Invalid payment method '{payment_method}'")

    if not items:
        cart = await cart_service.get_cart(db, user_id=user_id, session_id=session_id)
        if cart is None:
            raise ValidationError("Missing required fields: cart is empty")
        items = [{"product_id": i.product_id, "quantity": i.quantity, "price": i.price} for i in cart.items]

    has_price_changes = False
    total = Decimal("0")
    lines: list[OrderItem] = []
    # Running total per product so repeated lines cannot exceed stock together
    requested: dict[int, int] = {}
    for entry in items:
        product_id = int(entry["product_id"])
        quantity = int(entry.get("quantity") or 0)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product = await product_service.get_product(db, product_id)
        if not product:
            raise NotFoundError("Product", str(product_id))
        requested[product.id] = requested.get(product.id, 0) + quantity
        if product.stock < requested[product.id]:
            raise InsufficientStockError(product.title, product.stock)

        client_price = entry.get("price")
        if client_price is not None and float(client_price) != product.price:
            logger.warning(f"Price drift on product {product.id}: client {client_price}, live {product.price}")
            has_price_changes = True

        lines.append(
            OrderItem(
                product_id=product.id,
                product=product,
                seller_id=product.seller_id,
                quantity=quantity,
                price=product.price,
            )
        )
        total += Decimal(str(product.price)) * quantity

    order_total = float(total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    if total_amount is not None and abs(float(total_amount) - order_total) >= 0.005:
        has_price_changes = True

    amount_kobo = payout_service.to_kobo(order_total)
    if method != PaymentMethod.PAY_ON_DELIVERY and amount_kobo < MIN_CHARGE_KOBO:
        raise ValidationError("Amount must be at least ₦1")

    order = Order(
        user_id=user_id or None,
        session_id=None if user_id else session_id,
        shipping_info=json.dumps(shipping),
        total_amount=order_total,
        payment_status=PaymentStatus.PENDING.value,
        payment_method=method.value,
        created_at=datetime.utcnow(),
        items=lines,
    )
    db.add(order)
    await db.flush()
    logger.info(f"Order {order.id} created: total={order_total} method={method.value}")

    if method == PaymentMethod.PAY_ON_DELIVERY:
        await _enter_hold(db, order)
        return {
            "orderId": order.id,
            "paymentRequired": False,
            "totalAmount": order_total,
            "hasPriceChanges": has_price_changes,
            "paymentStatus": order.payment_status,
        }

    reference = f"{ORDER_REFERENCE_PREFIX}{order.id}_{int(time.time() * 1000)}"
    callback_origin = (origin or settings.frontend_url).rstrip("/")
    try:
        data = await paystack_client.initialize_transaction(
            email=user_email or shipping["email"],
            amount_kobo=amount_kobo,
            reference=reference,
            callback_url=f"{callback_origin}/payment-verify?orderId={order.id}",
            metadata={"orderId": order.id},
        )
    except PaystackError as e:
        raise PaymentGatewayError(
            f"Payment initialization failed: {e.message}",
            details={"gateway_status": e.status_code},
        )

    order.paystack_reference = data.get("reference") or reference
    order.paystack_authorization_url = data.get("authorization_url")
    await db.flush()

    return {
        "orderId": order.id,
        "paymentRequired": True,
        "authorizationUrl": order.paystack_authorization_url,
        "reference": order.paystack_reference,
        "totalAmount": order_total,
        "hasPriceChanges": has_price_changes,
        "paymentStatus": order.payment_status,
    }


# ════════════════════════════════════════════════════════════════════
# Payment confirmation
# ════════════════════════════════════════════════════════════════════


def verify_webhook_signature(payload: bytes, signature: str | None) -> bool:
    """
    Check Paystack's HMAC-SHA512 of the raw body.

    Fails closed when the secret key is not configured.
    """
    if not settings.paystack_secret_key:
        logger.error("PAYSTACK_SECRET_KEY not configured; rejecting webhook")
        return False

    if not signature:
        logger.warning("Webhook received without signature header")
        return False

    expected = hmac.new(
        settings.paystack_secret_key.encode("utf-8"),
        payload,
        hashlib.sha512,
    ).hexdigest()

    return hmac.compare_digest(expected, signature)


async def verify_transaction(db: AsyncSession, *, reference: str, order_id: int) -> Order:
    """
    Confirm a charge with the gateway and move the order to hold.

    Orders already in hold or paid are returned unchanged.

    Raises:
        ValidationError: gateway says unpaid, or reference/amount mismatch
        NotFoundError: unknown order
    """
    try:
        data = await paystack_client.verify_transaction(reference)
    except PaystackError as e:
        raise ValidationError(f"Payment verification failed: {e.message}")

    data = data or {}
    if data.get("status") != "success":
        raise ValidationError(f"Payment not successful: {data.get('status') or 'unknown'}")

    order = await get_order(db, order_id)
    if not order:
        raise NotFoundError("Order", str(order_id))

    if order.paystack_reference != reference:
        raise ValidationError("Payment reference mismatch")

    if order.payment_status in _SETTLED:
        logger.info(f"Order {order.id} already confirmed ({order.payment_status})")
        return order

    if order.payment_status != PaymentStatus.PENDING.value:
        raise ValidationError(f"Order cannot be confirmed from status {order.payment_status}")

    paid_kobo = data.get("amount")
    if paid_kobo is not None and int(paid_kobo) != payout_service.to_kobo(order.total_amount):
        logger.error(f"Order {order.id}: gateway amount {paid_kobo} != order total {order.total_amount}")
        raise ValidationError("Payment amount mismatch")

    await _enter_hold(db, order)
    logger.info(f"Order {order.id} payment verified, now on hold")
    return order


async def process_webhook(db: AsyncSession, payload: dict) -> dict:
    """
    Act on a signature-checked webhook event.

    Only charge.success for a still-pending order changes anything.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    event = payload.get("event")
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("Webhook data must be a JSON object")

    if event != CHARGE_SUCCESS_EVENT:
        logger.debug(f"Paystack webhook event ignored: {event}")
        return {"status": "ignored", "reason": f"unhandled_event_{event}"}

    reference = data.get("reference")
    order = await get_order_by_reference(db, reference) if reference else None
    if not order:
        logger.warning(f"Paystack webhook for unknown reference: {reference}")
        return {"status": "ignored", "reason": "unknown_order"}

    if order.payment_status != PaymentStatus.PENDING.value:
        return {"status": "ignored", "reason": "already_processed"}

    order = await verify_transaction(db, reference=reference, order_id=order.id)
    return {"status": order.payment_status, "orderId": order.id}


# ════════════════════════════════════════════════════════════════════
# Order history
# ════════════════════════════════════════════════════════════════════


async def list_orders(db: AsyncSession, *, role: str, account_id: int) -> list[dict]:
    """Buyers see their orders; sellers see orders holding at least one of their lines."""
    q = order_query()
    if role == Role.SELLER.value:
        q = q.where(Order.id.in_(select(OrderItem.order_id).where(OrderItem.seller_id == account_id)))
    else:
        q = q.where(Order.user_id == account_id)

    res = await db.execute(q.order_by(Order.created_at.desc(), Order.id.desc()))
    orders = res.scalars().all()
    seller_id = account_id if role == Role.SELLER.value else None
    return [serialize_order(o, seller_id=seller_id) for o in orders]


async def get_order_details(db: AsyncSession, *, order_id: int, role: str, account_id: int, admin: bool = False) -> dict:
    order = await get_order(db, order_id)
    if not order:
        raise NotFoundError("Order", str(order_id))

    if role == Role.SELLER.value:
        if not any(i.seller_id == account_id for i in order.items):
            raise PermissionDeniedError("Not authorized to view this order")
        return serialize_order(order, seller_id=account_id)

    if order.user_id != account_id and not admin:
        raise PermissionDeniedError("Not authorized to view this order")
    return serialize_order(order)


# ════════════════════════════════════════════════════════════════════
# Delivery confirmation
# ════════════════════════════════════════════════════════════════════


async def confirm_delivery(
    db: AsyncSession,
    *,
    order_id: int,
    role: str,
    account_id: Optional[int],
    admin: bool = False,
) -> tuple[bool, dict]:
    """
    Buyer (or admin) confirms delivery; every seller on the order is paid out.

    Returns (all_paid, payload). The order becomes paid only when every
    transfer in this attempt succeeded; otherwise it stays on hold.
    """
    order = await get_order(db, order_id)
    if not order:
        raise NotFoundError("Order", str(order_id))

    is_owner = role == Role.USER.value and order.user_id is not None and order.user_id == account_id
    if not (is_owner or admin):
        raise PermissionDeniedError("Not authorized")

    if order.seller_paid_at is not None:
        raise ConflictError("Sellers already paid")

    if order.payment_status != PaymentStatus.HOLD.value:
        raise ValidationError("Order not in hold status")

    results = await payout_service.pay_sellers(db, order_id=order.id, items=order.items)
    failed = [r for r in results if not r["success"]]
    mode = settings.payment_mode_label

    if failed:
        logger.warning(f"Order {order.id}: {len(failed)} of {len(results)} seller payout(s) failed")
        return False, {
            "message": f"{len(failed)} payment(s) failed",
            "orderId": order.id,
            "paymentStatus": order.payment_status,
            "results": results,
            "mode": mode,
        }

    order.payment_status = PaymentStatus.PAID.value
    order.seller_paid_at = datetime.utcnow()
    await db.flush()
    logger.info(f"Order {order.id} delivered; {len(results)} seller(s) paid ({mode})")

    return True, {
        "message": "Delivery confirmed (test mode)" if mode == "test" else "Delivery confirmed and sellers paid",
        "orderId": order.id,
        "paymentStatus": order.payment_status,
        "results": results,
        "mode": mode,
    }
