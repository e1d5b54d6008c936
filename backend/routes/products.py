"""
Catalog endpoints — seller product management + storefront listings.

Static listing paths are declared before /products/{product_id}.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import Seller
from deps import require_auth, require_seller
from domain.constants import MAX_PRODUCT_IMAGES
from domain.responses import success_response
from models import ApiModel
from services import product_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["products"])


class ProductCreateRequest(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=50)
    images: list[str] = Field(default_factory=list, max_length=MAX_PRODUCT_IMAGES)
    stock: int = Field(0, ge=0)
    is_featured: bool = Field(False, alias="isFeatured")


class ProductUpdateRequest(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=50)
    is_featured: bool = Field(False, alias="isFeatured")
    stock: int | None = Field(default=None, ge=0)
    images: list[str] | None = Field(default=None, max_length=MAX_PRODUCT_IMAGES)


def _listing(products) -> dict:
    return success_response(
        data=[product_service.serialize_product(p) for p in products],
        meta={"total": len(products)},
    )


@router.post("/products", status_code=status.HTTP_201_CREATED)
async def create_product(
    request: ProductCreateRequest,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    p = await product_service.create_product(
        db,
        seller_id=seller.id,
        title=request.title,
        description=request.description,
        price=request.price,
        category=request.category,
        images=request.images,
        stock=request.stock,
        is_featured=request.is_featured,
    )
    await db.commit()
    return success_response(data=product_service.serialize_product(p))


@router.get("/products")
async def list_products(
    category: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    return _listing(await product_service.list_products(db, category=category))


@router.get("/products/trending")
async def trending_products(db: AsyncSession = Depends(get_db)):
    return _listing(await product_service.list_trending(db))


@router.get("/products/hot")
async def hot_products(db: AsyncSession = Depends(get_db)):
    return _listing(await product_service.list_hot(db))


@router.get("/products/featured")
async def featured_products(db: AsyncSession = Depends(get_db)):
    return _listing(await product_service.list_featured(db))


@router.get("/products/shop-by-category")
async def shop_by_category(
    category: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    return _listing(await product_service.list_by_category(db, category=category or ""))


@router.get("/products/special-offers")
async def special_offers(
    _principal=Depends(require_auth),
    db: AsyncSession = Depends(get_db),
):
    return _listing(await product_service.list_recent(db))


@router.get("/products/style-inspiration")
async def style_inspiration(db: AsyncSession = Depends(get_db)):
    return _listing(await product_service.list_featured(db))


@router.get("/seller/products")
async def list_seller_products(
    category: str | None = Query(default=None),
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return _listing(await product_service.list_seller_products(db, seller_id=seller.id, category=category))


@router.get("/products/{product_id}")
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    p = await product_service.view_product(db, product_id)
    await db.commit()
    return success_response(data=product_service.serialize_product(p, slug_category=True))


@router.patch("/products/{product_id}")
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    p = await product_service.update_product(
        db,
        product_id=product_id,
        seller_id=seller.id,
        title=request.title,
        description=request.description,
        price=request.price,
        category=request.category,
        is_featured=request.is_featured,
        stock=request.stock,
        images=request.images,
    )
    await db.commit()
    return success_response(data=product_service.serialize_product(p))


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: int,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    await product_service.delete_product(db, product_id=product_id, seller_id=seller.id)
    await db.commit()
    return success_response(data={"id": product_id, "message": "Product deleted successfully"})
