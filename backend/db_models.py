"""
SQLAlchemy ORM models for the Marketplace API.

Tables:
    users        — buyer accounts (optionally admins)
    sellers      — store profiles plus Paystack payout recipient
    products     — catalog entries owned by a seller
    carts        — one cart per user OR per guest session
    cart_items   — cart lines (price captured at add time)
    orders       — checkout records driving the payment lifecycle
    order_items  — order lines with seller + unit price snapshots
"""
import json
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, ForeignKey,
    UniqueConstraint, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base


class User(Base):
    """Buyer accounts."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(100), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Seller(Base):
    """
    Store profiles.

    Payout setup is one-time: paystack_recipient_code and the bank_* columns
    are written once by the payment setup flow, with the account number
    stored masked.
    """
    __tablename__ = "sellers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone_number = Column(String(30), nullable=False)
    address = Column(Text, nullable=False)
    categories = Column(String(255), nullable=False)
    password_hash = Column(String(100), nullable=False)
    profile_image = Column(Text, nullable=True)
    description = Column(Text, nullable=False, default="")

    # Payout details
    paystack_recipient_code = Column(String(100), nullable=True)
    bank_code = Column(String(20), nullable=True)
    bank_account_number = Column(String(20), nullable=True)  # masked
    bank_account_name = Column(String(200), nullable=True)
    bank_name = Column(String(200), nullable=True)
    is_payment_setup = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    products = relationship("Product", back_populates="seller", lazy="select")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    seller_id = Column(Integer, ForeignKey("sellers.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    category = Column(String(50), nullable=False, index=True)
    images = Column(Text, nullable=False, default="[]")  # JSON list of URLs
    stock = Column(Integer, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    sales = Column(Integer, nullable=False, default=0)
    is_featured = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    seller = relationship("Seller", back_populates="products", lazy="selectin")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("views >= 0", name="ck_products_views_non_negative"),
        CheckConstraint("sales >= 0", name="ck_products_sales_non_negative"),
        # For trending / hot listings
        Index("ix_products_views_sales", "views", "sales"),
    )

    @property
    def image_list(self) -> list[str]:
        try:
            return json.loads(self.images or "[]")
        except ValueError:
            return []


class Cart(Base):
    """
    A shopping cart keyed by exactly one owner: a user id or a guest session id.

    Deleted when its last line is removed.
    """
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True)
    session_id = Column(String(64), nullable=True, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.id",
    )

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (session_id IS NULL)",
            name="ck_carts_single_owner",
        ),
    )


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False)  # price at add

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_item_product"),
    )


class Order(Base):
    """
    Checkout records.

    payment_status lifecycle: pending -> hold -> paid (or failed).
    seller_paid_at is set exactly once, when every seller payout succeeded.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    session_id = Column(String(64), nullable=True, index=True)
    shipping_info = Column(Text, nullable=False)  # JSON object
    total_amount = Column(Float, nullable=False)
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    payment_method = Column(String(20), nullable=False, default="card")
    paystack_reference = Column(String(100), nullable=True, unique=True, index=True)
    paystack_authorization_url = Column(Text, nullable=True)
    payment_confirmed_at = Column(DateTime, nullable=True)
    seller_paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        # For buyer order history
        Index("ix_orders_user_created", "user_id", "created_at"),
    )

    @property
    def shipping(self) -> dict:
        try:
            return json.loads(self.shipping_info or "{}")
        except ValueError:
            return {}


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    seller_id = Column(Integer, ForeignKey("sellers.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)  # unit price snapshot

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="selectin")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
    )
