"""
Cart service — user- or guest-session-scoped shopping carts.

Invariants maintained after every mutation and every read:
    - a line's quantity never exceeds the product's live stock
      (lines are clamped down to stock)
    - lines whose quantity reaches zero, or whose product disappeared, are pruned
    - a cart with no lines is deleted

Ownership is exclusive: a cart belongs to a user id OR a guest session id.
Guests without a session id get a fresh UUID, which callers must hand back
to the client.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db_models import Cart, CartItem, Product
from domain.errors import InsufficientStockError, NotFoundError, ValidationError
from services import product_service
from utils.validators import new_session_id

logger = logging.getLogger(__name__)


def _owner_clause(user_id: Optional[int], session_id: Optional[str]):
    if user_id:
        return Cart.user_id == user_id
    return Cart.session_id == session_id


async def find_cart(db: AsyncSession, *, user_id: Optional[int], session_id: Optional[str]) -> Cart | None:
    if not user_id and not session_id:
        return None
    res = await db.execute(
        select(Cart)
        .where(_owner_clause(user_id, session_id))
        .options(selectinload(Cart.items).selectinload(CartItem.product).selectinload(Product.seller))
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def _reconcile(db: AsyncSession, cart: Cart) -> tuple[Cart | None, bool]:
    """
    Clamp every line to live stock and prune empty lines.

    Returns (cart, changed); cart is None when it ended up empty and was deleted.
    """
    changed = False
    for item in list(cart.items):
        product = item.product
        if product is None:
            cart.items.remove(item)
            changed = True
            continue
        if product.stock < item.quantity:
            logger.warning(
                f"Cart {cart.id}: clamping product {product.id} from {item.quantity} to {product.stock}"
            )
            item.quantity = product.stock
            changed = True
        if item.quantity <= 0:
            cart.items.remove(item)
            changed = True

    if not cart.items:
        if cart.id is not None:
            await db.delete(cart)
        await db.flush()
        return None, True

    await db.flush()
    return cart, changed


async def _load_product(db: AsyncSession, product_id: int) -> Product:
    product = await product_service.get_product(db, product_id)
    if not product:
        raise NotFoundError("Product", str(product_id))
    return product


def _find_line(cart: Cart, product_id: int) -> CartItem | None:
    for item in cart.items:
        if item.product_id == product_id:
            return item
    return None


async def add_to_cart(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    session_id: Optional[str],
    product_id: int,
    quantity: int = 1,
) -> tuple[Cart | None, Optional[str]]:
    """
    Add a product, merging with an existing line.

    Returns (cart, session_id). session_id is None for user-owned carts.
    """
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    product = await _load_product(db, product_id)
    if product.stock < quantity:
        raise ValidationError("Insufficient stock available")

    if not user_id and not session_id:
        session_id = new_session_id()

    cart = await find_cart(db, user_id=user_id, session_id=session_id)
    if cart is None:
        cart = Cart(
            user_id=user_id or None,
            session_id=None if user_id else session_id,
            items=[],
        )
        db.add(cart)

    line = _find_line(cart, product_id)
    if line is not None:
        if line.quantity + quantity > product.stock:
            raise ValidationError("Insufficient stock available")
        line.quantity += quantity
    else:
        cart.items.append(
            CartItem(product_id=product.id, product=product, quantity=quantity, price=product.price)
        )

    await db.flush()
    cart, _ = await _reconcile(db, cart)
    return cart, cart.session_id if cart else session_id


async def update_cart_item(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    session_id: Optional[str],
    product_id: int,
    quantity: int,
) -> Cart | None:
    """Set a line's quantity outright."""
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    product = await _load_product(db, product_id)
    if product.stock < quantity:
        raise ValidationError("Insufficient stock available")

    cart = await find_cart(db, user_id=user_id, session_id=session_id)
    if cart is None:
        raise NotFoundError("Cart", "for caller")

    line = _find_line(cart, product_id)
    if line is None:
        raise NotFoundError("Cart item", str(product_id))

    line.quantity = quantity
    cart, _ = await _reconcile(db, cart)
    return cart


async def remove_cart_item(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    session_id: Optional[str],
    product_id: int,
) -> Cart | None:
    """Drop a line. Returns None when that emptied (and deleted) the cart."""
    cart = await find_cart(db, user_id=user_id, session_id=session_id)
    if cart is None:
        raise NotFoundError("Cart", "for caller")

    line = _find_line(cart, product_id)
    if line is None:
        raise NotFoundError("Cart item", str(product_id))

    cart.items.remove(line)
    cart, _ = await _reconcile(db, cart)
    return cart


async def get_cart(db: AsyncSession, *, user_id: Optional[int], session_id: Optional[str]) -> Cart | None:
    """Read a cart, re-validating every line against live stock."""
    if not user_id and not session_id:
        raise ValidationError("User ID or session ID required")

    cart = await find_cart(db, user_id=user_id, session_id=session_id)
    if cart is None:
        return None
    cart, _ = await _reconcile(db, cart)
    return cart


async def sync_cart(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    session_id: Optional[str],
    items: list[dict],
) -> tuple[Cart | None, Optional[str], bool]:
    """
    Replace the cart's contents with a client-side cart.

    items: [{product_id:int, quantity:int, price:float|None}]

    Returns (cart, session_id, has_price_changes). Lines are stored at the
    live price; a differing client price only sets has_price_changes.
    """
    if not items:
        raise ValidationError("Invalid or empty items")

    if not user_id and not session_id:
        session_id = new_session_id()

    has_price_changes = False
    lines: list[CartItem] = []
    for entry in items:
        product = await _load_product(db, int(entry["product_id"]))
        quantity = int(entry.get("quantity") or 0)
        client_price = entry.get("price")
        if client_price is not None and float(client_price) != product.price:
            logger.warning(f"Price changed for {product.title}: {client_price} -> {product.price}")
            has_price_changes = True
        if quantity < 1 or product.stock < quantity:
            raise InsufficientStockError(product.title, product.stock)
        existing = next((l for l in lines if l.product_id == product.id), None)
        if existing is not None:
            if existing.quantity + quantity > product.stock:
                raise InsufficientStockError(product.title, product.stock)
            existing.quantity += quantity
        else:
            lines.append(CartItem(product_id=product.id, product=product, quantity=quantity, price=product.price))

    cart = await find_cart(db, user_id=user_id, session_id=session_id)
    if cart is None:
        cart = Cart(
            user_id=user_id or None,
            session_id=None if user_id else session_id,
            items=[],
        )
        db.add(cart)
    else:
        cart.items.clear()
        await db.flush()

    cart.items.extend(lines)
    await db.flush()

    cart, _ = await _reconcile(db, cart)
    return cart, (cart.session_id if cart else session_id), has_price_changes


async def clear_cart(db: AsyncSession, *, user_id: Optional[int], session_id: Optional[str]) -> bool:
    """Delete the owner's cart. Returns True when a cart existed."""
    cart = await find_cart(db, user_id=user_id, session_id=session_id)
    if cart is None:
        return False
    await db.delete(cart)
    await db.flush()
    return True


def serialize_cart(cart: Cart | None) -> dict:
    if cart is None:
        return {"id": None, "items": [], "subtotal": 0.0}

    items = []
    subtotal = 0.0
    for item in cart.items:
        p = item.product
        items.append(
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "price": item.price,
                "product": {
                    "title": p.title,
                    "images": p.image_list,
                    "price": p.price,
                    "category": p.category,
                    "stock": p.stock,
                    "seller": {
                        "id": p.seller_id,
                        "store_name": p.seller.store_name if p.seller else None,
                    },
                } if p else None,
            }
        )
        subtotal += item.price * item.quantity

    return {
        "id": cart.id,
        "session_id": cart.session_id,
        "items": items,
        "subtotal": round(subtotal, 2),
    }
