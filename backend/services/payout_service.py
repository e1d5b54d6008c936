"""
Payout service — splits a delivered order's revenue across its sellers.

One transfer per seller, no atomicity across sellers: callers receive every
individual result and decide the order's fate from them. Nothing is retried.
"""

import logging
import time
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import OrderItem, Seller
from domain.constants import KOBO_PER_NAIRA, TEST_TRANSFER_PREFIX, TRANSFER_REFERENCE_PREFIX
from domain.errors import DomainError, ValidationError
from exceptions import PaystackError
from paystack_client import paystack_client

logger = logging.getLogger(__name__)


def to_kobo(amount: float) -> int:
    """Naira -> integer kobo, rounded half up."""
    kobo = Decimal(str(amount)) * KOBO_PER_NAIRA
    return int(kobo.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _now_ms() -> int:
    return int(time.time() * 1000)


def compute_seller_totals(items: list[OrderItem]) -> dict[int, float]:
    """
    Sum price * quantity per seller over an order's lines.

    Uses the seller id snapshotted on each line, so later product edits or
    deletions never move money to the wrong store.
    """
    totals: "OrderedDict[int, Decimal]" = OrderedDict()
    for item in items:
        line = Decimal(str(item.price)) * item.quantity
        totals[item.seller_id] = totals.get(item.seller_id, Decimal("0")) + line
    return {
        seller_id: float(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
        for seller_id, amount in totals.items()
    }


async def transfer_to_seller(
    db: AsyncSession,
    *,
    order_id: int,
    seller_id: int,
    amount: float,
) -> str:
    """
    Move `amount` naira to a seller's Paystack recipient.

    Returns the transfer code (simulated in test mode).

    Raises:
        ValidationError: seller unknown or payout details missing
        PaystackError: the gateway refused or could not be reached
    """
    seller = await db.get(Seller, seller_id)
    if not seller or not seller.paystack_recipient_code:
        raise ValidationError("Seller payment details not configured")

    if settings.payment_test_mode:
        code = f"{TEST_TRANSFER_PREFIX}{order_id}_{seller_id}_{_now_ms()}"
        logger.info(f"Simulated transfer {code}: {amount} to seller {seller_id}")
        return code

    try:
        data = await paystack_client.create_transfer(
            amount_kobo=to_kobo(amount),
            recipient=seller.paystack_recipient_code,
            reason=f"Payment for order {order_id}",
            reference=f"{TRANSFER_REFERENCE_PREFIX}{order_id}_{seller_id}_{_now_ms()}",
        )
    except PaystackError as e:
        # Test keys cannot move money; the gateway says so instead of failing hard
        if "Test mode" in e.message:
            code = f"{TEST_TRANSFER_PREFIX}{order_id}_{seller_id}_{_now_ms()}"
            logger.warning(f"Gateway in test mode, simulating transfer {code}")
            return code
        raise

    return (data or {}).get("transfer_code")


async def pay_sellers(db: AsyncSession, *, order_id: int, items: list[OrderItem]) -> list[dict]:
    """Pay every seller on the order; one result dict per seller, in line order."""
    results = []
    mode = settings.payment_mode_label

    for seller_id, amount in compute_seller_totals(items).items():
        try:
            code = await transfer_to_seller(db, order_id=order_id, seller_id=seller_id, amount=amount)
        except (PaystackError, DomainError) as e:
            message = getattr(e, "message", str(e))
            logger.error(f"Payout to seller {seller_id} for order {order_id} failed: {message}")
            results.append(
                {"sellerId": seller_id, "success": False, "amount": amount, "error": message, "mode": mode}
            )
            continue

        logger.info(f"Paid seller {seller_id} {amount} for order {order_id} ({code})")
        results.append(
            {"sellerId": seller_id, "success": True, "amount": amount, "transferCode": code, "mode": mode}
        )

    return results
