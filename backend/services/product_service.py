"""
Catalog service — seller product CRUD and the storefront listings.

Listings (trending, hot, featured, ...) are plain filtered/sorted queries;
every product row is returned with its seller's store name embedded.
"""

import json
import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db_models import Cart, CartItem, Order, OrderItem, Product
from domain.constants import (
    CATEGORY_PAGE_LIMIT,
    HOT_MIN_SALES,
    LISTING_WINDOW_DAYS,
    MAX_PRODUCT_IMAGES,
    SHOWCASE_LIMIT,
    TRENDING_MIN_VIEWS,
)
from domain.enums import PaymentStatus
from domain.errors import ConflictError, NotFoundError, ValidationError
from utils.validators import category_slug, normalize_category

logger = logging.getLogger(__name__)


def serialize_product(p: Product, *, slug_category: bool = False) -> dict:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "price": p.price,
        "category": category_slug(p.category) if slug_category else p.category,
        "images": p.image_list,
        "stock": p.stock,
        "views": p.views,
        "sales": p.sales,
        "is_featured": p.is_featured,
        "seller": {
            "id": p.seller_id,
            "store_name": p.seller.store_name if p.seller else None,
        },
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def _base_query():
    return select(Product).options(selectinload(Product.seller))


def _clean_images(images: list[str] | None) -> str:
    urls = [u.strip() for u in (images or []) if u and u.strip()]
    return json.dumps(urls[:MAX_PRODUCT_IMAGES])


def _check_price(price: float) -> float:
    if price is None or price < 0:
        raise ValidationError("Price must be a non-negative number")
    return float(price)


async def get_product(db: AsyncSession, product_id: int) -> Product | None:
    res = await db.execute(
        _base_query().where(Product.id == product_id).execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def create_product(
    db: AsyncSession,
    *,
    seller_id: int,
    title: str,
    description: str,
    price: float,
    category: str,
    images: list[str] | None = None,
    stock: int = 0,
    is_featured: bool = False,
) -> Product:
    if not title.strip() or not description.strip():
        raise ValidationError("All fields are required")
    if stock < 0:
        raise ValidationError("Stock cannot be negative")

    product = Product(
        seller_id=seller_id,
        title=title.strip(),
        description=description.strip(),
        price=_check_price(price),
        category=normalize_category(category),
        images=_clean_images(images),
        stock=stock,
        views=0,
        sales=0,
        is_featured=bool(is_featured),
        created_at=datetime.utcnow(),
    )
    db.add(product)
    await db.flush()
    logger.info(f"Product {product.id} created by seller {seller_id}")
    return await get_product(db, product.id)


async def update_product(
    db: AsyncSession,
    *,
    product_id: int,
    seller_id: int,
    title: str,
    description: str,
    price: float,
    category: str,
    is_featured: bool = False,
    stock: int | None = None,
    images: list[str] | None = None,
) -> Product:
    """Full update of the editable fields; the product must belong to the seller."""
    product = await get_product(db, product_id)
    if not product or product.seller_id != seller_id:
        raise NotFoundError("Product", f"{product_id} (or not owned by seller)")

    if not title.strip() or not description.strip():
        raise ValidationError("Title, description, price, and category are required")

    product.title = title.strip()
    product.description = description.strip()
    product.price = _check_price(price)
    product.category = normalize_category(category)
    product.is_featured = bool(is_featured)
    if stock is not None:
        if stock < 0:
            raise ValidationError("Stock cannot be negative")
        product.stock = stock
    if images is not None:
        product.images = _clean_images(images)

    await db.flush()
    return product


async def delete_product(db: AsyncSession, *, product_id: int, seller_id: int) -> None:
    """
    Delete a seller's product.

    Refused while an unsettled (pending/hold) order still references it, since
    payouts are computed from those order lines. Cart lines are dropped
    along with any cart they leave empty.
    """
    product = await get_product(db, product_id)
    if not product or product.seller_id != seller_id:
        raise NotFoundError("Product", f"{product_id} (or not owned by seller)")

    res = await db.execute(
        select(OrderItem.id)
        .join(Order, OrderItem.order_id == Order.id)
        .where(
            OrderItem.product_id == product_id,
            Order.payment_status.in_([PaymentStatus.PENDING.value, PaymentStatus.HOLD.value]),
        )
    )
    open_lines = res.scalars().all()
    if open_lines:
        raise ConflictError(
            f"Cannot delete product {product.title}: {len(open_lines)} open order line(s) exist"
        )

    await db.execute(delete(CartItem).where(CartItem.product_id == product_id))
    await db.execute(delete(Cart).where(~Cart.items.any()))
    await db.delete(product)
    await db.flush()
    logger.info(f"Product {product_id} deleted by seller {seller_id}")


async def view_product(db: AsyncSession, product_id: int) -> Product:
    """Fetch a product for its detail page and count the view."""
    product = await get_product(db, product_id)
    if not product:
        raise NotFoundError("Product", str(product_id))
    product.views = (product.views or 0) + 1
    await db.flush()
    return product


# ── Storefront listings ─────────────────────────────────────────────

async def list_products(db: AsyncSession, *, category: str | None = None) -> list[Product]:
    q = _base_query()
    if category:
        q = q.where(Product.category == category.strip().lower())
    res = await db.execute(q.order_by(Product.created_at.desc(), Product.id.desc()))
    return res.scalars().all()


async def list_seller_products(db: AsyncSession, *, seller_id: int, category: str | None = None) -> list[Product]:
    q = _base_query().where(Product.seller_id == seller_id)
    if category:
        q = q.where(Product.category == category.strip().lower())
    res = await db.execute(q.order_by(Product.created_at.desc(), Product.id.desc()))
    return res.scalars().all()


def _window_start() -> datetime:
    return datetime.utcnow() - timedelta(days=LISTING_WINDOW_DAYS)


async def list_trending(db: AsyncSession) -> list[Product]:
    """Recent products with high views or sales."""
    res = await db.execute(
        _base_query()
        .where(
            Product.created_at >= _window_start(),
            or_(Product.views >= TRENDING_MIN_VIEWS, Product.sales >= HOT_MIN_SALES),
        )
        .order_by(Product.views.desc(), Product.sales.desc())
        .limit(SHOWCASE_LIMIT)
    )
    return res.scalars().all()


async def list_hot(db: AsyncSession) -> list[Product]:
    """Recent products with high sales."""
    res = await db.execute(
        _base_query()
        .where(Product.created_at >= _window_start(), Product.sales >= HOT_MIN_SALES)
        .order_by(Product.sales.desc())
        .limit(SHOWCASE_LIMIT)
    )
    return res.scalars().all()


async def list_featured(db: AsyncSession) -> list[Product]:
    res = await db.execute(
        _base_query()
        .where(Product.is_featured == True)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(SHOWCASE_LIMIT)
    )
    return res.scalars().all()


async def list_by_category(db: AsyncSession, *, category: str) -> list[Product]:
    if not category or not category.strip():
        raise ValidationError("Category is required")
    res = await db.execute(
        _base_query()
        .where(Product.category == category.strip().lower())
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(CATEGORY_PAGE_LIMIT)
    )
    return res.scalars().all()


async def list_recent(db: AsyncSession, *, limit: int = SHOWCASE_LIMIT) -> list[Product]:
    res = await db.execute(
        _base_query().order_by(Product.created_at.desc(), Product.id.desc()).limit(limit)
    )
    return res.scalars().all()
