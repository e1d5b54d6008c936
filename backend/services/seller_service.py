"""
Seller service — dashboard stats, seller-scoped orders, profile and payout setup.

Payout setup is one-time: it resolves the bank account, registers a Paystack
transfer recipient and stores only the masked account number. In payment test
mode the gateway's money-moving endpoints are never called.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, OrderItem, Product, Seller
from domain.constants import MOCK_BANKS, TEST_ACCOUNT_NAME, TEST_BANK_ACCOUNTS, TEST_RECIPIENT_CODE
from domain.enums import PaymentStatus
from domain.errors import (
    ConflictError,
    NotFoundError,
    PaymentGatewayError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)
from exceptions import PaystackError
from paystack_client import paystack_client
from services import order_service
from utils.ttl_cache import TTLCache
from utils.validators import mask_account_number, validate_account_number

logger = logging.getLogger(__name__)

_verification_cache = TTLCache(settings.bank_verification_cache_seconds)


def reset_verification_cache() -> None:
    _verification_cache.clear()


def _seller_orders_clause(seller_id: int):
    return Order.id.in_(select(OrderItem.order_id).where(OrderItem.seller_id == seller_id))


# ── Dashboard ───────────────────────────────────────────────────────

async def get_stats(db: AsyncSession, *, seller_id: int) -> dict:
    """Counts and revenue over the seller's own order lines only."""
    total_products = (
        await db.execute(select(func.count(Product.id)).where(Product.seller_id == seller_id))
    ).scalar_one()

    res = await db.execute(
        select(Order.id, Order.payment_status, OrderItem.price, OrderItem.quantity)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .where(OrderItem.seller_id == seller_id)
    )

    statuses: dict[int, str] = {}
    total_revenue = 0.0
    pending_revenue = 0.0
    for order_id, status, price, quantity in res.all():
        statuses[order_id] = status
        if status == PaymentStatus.PAID.value:
            total_revenue += price * quantity
        elif status == PaymentStatus.HOLD.value:
            pending_revenue += price * quantity

    return {
        "totalProducts": total_products,
        "totalOrders": len(statuses),
        "pendingOrders": sum(1 for s in statuses.values() if s == PaymentStatus.HOLD.value),
        "completedOrders": sum(1 for s in statuses.values() if s == PaymentStatus.PAID.value),
        "totalRevenue": round(total_revenue, 2),
        "pendingRevenue": round(pending_revenue, 2),
    }


async def list_orders(
    db: AsyncSession,
    *,
    seller_id: int,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Orders containing the seller's lines; returns (page, total)."""
    where = [_seller_orders_clause(seller_id)]
    if status and status != "all":
        try:
            where.append(Order.payment_status == PaymentStatus(status).value)
        except ValueError:
            raise ValidationError(f"Invalid status '{status}'")

    total = (await db.execute(select(func.count(Order.id)).where(*where))).scalar_one()
    res = await db.execute(
        order_service.order_query()
        .where(*where)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    orders = [order_service.serialize_order(o, seller_id=seller_id) for o in res.scalars().all()]
    return orders, total


async def get_order(db: AsyncSession, *, seller_id: int, order_id: int) -> dict:
    order = await order_service.get_order(db, order_id)
    if not order:
        raise NotFoundError("Order", str(order_id))
    if not any(i.seller_id == seller_id for i in order.items):
        raise PermissionDeniedError("Not authorized to view this order")
    return order_service.serialize_order(order, seller_id=seller_id)


async def update_profile(db: AsyncSession, *, seller: Seller, fields: dict) -> Seller:
    """Apply the non-None profile fields; email must not belong to another seller."""
    email = fields.get("email")
    if email:
        email = email.strip().lower()
        res = await db.execute(select(Seller.id).where(Seller.email == email, Seller.id != seller.id))
        if res.scalar_one_or_none() is not None:
            raise ValidationError("Email is already taken by another seller")
        seller.email = email

    for name in ("store_name", "phone_number", "address", "categories", "description"):
        value = fields.get(name)
        if value is not None:
            setattr(seller, name, value.strip())

    await db.flush()
    return seller


# ── Banks / payout setup ────────────────────────────────────────────

async def list_banks() -> dict:
    """Active banks sorted by name; test mode falls back to a fixed list."""
    try:
        banks = await paystack_client.list_banks()
    except PaystackError as e:
        if settings.payment_test_mode:
            logger.warning(f"Bank list unavailable ({e.message}); serving mock banks")
            return {"banks": list(MOCK_BANKS), "mock": True}
        if e.is_network or e.is_timeout:
            raise PaymentGatewayError("Bank service temporarily unavailable. Please try again.", status_code=503)
        raise PaymentGatewayError(f"Failed to fetch banks: {e.message}", status_code=e.status_code or 502)

    active = [b for b in (banks or []) if b.get("active")]
    active.sort(key=lambda b: b.get("name", "").lower())
    return {"banks": [{"code": b["code"], "name": b["name"]} for b in active], "mock": False}


def _test_account_name(account_number: str, bank_code: str) -> str:
    for acc in TEST_BANK_ACCOUNTS:
        if acc["account_number"] == account_number and acc["bank_code"] == bank_code:
            return acc["account_name"]
    return TEST_ACCOUNT_NAME


async def verify_account(*, account_number: str, bank_code: str) -> dict:
    """
    Resolve an account number to its holder's name.

    Successful lookups are cached per account/bank pair.
    """
    if not account_number or not bank_code:
        raise ValidationError("Account number and bank code are required")
    validate_account_number(account_number)

    cache_key = f"{account_number}-{bank_code}"
    cached = _verification_cache.get(cache_key)
    if cached is not None:
        return {**cached, "cached": True}

    if settings.payment_test_mode:
        result = {
            "accountName": _test_account_name(account_number, bank_code),
            "message": "Account verified successfully (Test Mode)",
        }
        _verification_cache.set(cache_key, result)
        return {**result, "cached": False}

    try:
        data = await paystack_client.resolve_account(account_number=account_number, bank_code=bank_code)
    except PaystackError as e:
        if e.is_rate_limited:
            raise RateLimitError("Bank verification service is busy. Please try again later.")
        if e.is_network or e.is_timeout:
            raise PaymentGatewayError("Bank verification service unavailable. Please try again.", status_code=503)
        raise ValidationError(f"Account verification failed: {e.message}")

    result = {"accountName": data.get("account_name"), "message": "Account verified successfully"}
    _verification_cache.set(cache_key, result)
    return {**result, "cached": False}


def _setup_error(e: PaystackError) -> Exception:
    if e.is_rate_limited:
        return RateLimitError("Payment service is currently busy. Please try again in a few minutes.")
    if e.is_timeout:
        return PaymentGatewayError("Payment service timeout. Please try again.", status_code=408)
    if e.is_network:
        return PaymentGatewayError("Payment service temporarily unavailable. Please try again.", status_code=503)
    return ValidationError(f"Payment setup failed: {e.message or 'Invalid bank details'}")


async def setup_payment(
    db: AsyncSession,
    *,
    seller: Seller,
    bank_code: str,
    account_number: str,
    account_name: str,
    bank_name: Optional[str] = None,
) -> Seller:
    """Register the seller's payout account. Can only be done once."""
    if not bank_code or not account_number or not account_name:
        raise ValidationError("Bank code, account number, and account name are required")
    validate_account_number(account_number)

    if seller.is_payment_setup:
        raise ConflictError("Payment is already setup for this seller")

    if settings.payment_test_mode:
        recipient_code = TEST_RECIPIENT_CODE
        resolved_name = account_name
    else:
        try:
            resolved = await paystack_client.resolve_account(account_number=account_number, bank_code=bank_code)
            resolved_name = resolved.get("account_name") or account_name
            recipient = await paystack_client.create_transfer_recipient(
                name=resolved_name,
                account_number=account_number,
                bank_code=bank_code,
            )
        except PaystackError as e:
            logger.error(f"Payout setup for seller {seller.id} failed: {e.message}")
            raise _setup_error(e)
        recipient_code = recipient.get("recipient_code")

    seller.paystack_recipient_code = recipient_code
    seller.bank_code = bank_code
    seller.bank_account_number = mask_account_number(account_number)
    seller.bank_account_name = resolved_name
    seller.bank_name = bank_name
    seller.is_payment_setup = True
    await db.flush()

    logger.info(f"Seller {seller.id} payout recipient registered ({settings.payment_mode_label})")
    return seller
