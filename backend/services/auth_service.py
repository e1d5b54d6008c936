"""
Account service — buyer and seller registration and password login.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Seller, User
from domain.enums import Role
from domain.errors import ValidationError
from middleware.auth import hash_password, issue_access_token, verify_password

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def register_user(db: AsyncSession, *, username: str, email: str, password: str) -> User:
    email = _normalize_email(email)
    res = await db.execute(select(User).where(User.email == email))
    if res.scalar_one_or_none():
        raise ValidationError("User already exists")

    user = User(
        username=username.strip(),
        email=email,
        password_hash=hash_password(password),
    )
    db.add(user)
    await db.flush()
    logger.info(f"New buyer registered: id={user.id}")
    return user


async def register_seller(
    db: AsyncSession,
    *,
    store_name: str,
    email: str,
    phone_number: str,
    address: str,
    categories: str,
    password: str,
) -> Seller:
    email = _normalize_email(email)
    res = await db.execute(select(Seller).where(Seller.email == email))
    if res.scalar_one_or_none():
        raise ValidationError("Seller already exists")

    seller = Seller(
        store_name=store_name.strip(),
        email=email,
        phone_number=phone_number.strip(),
        address=address.strip(),
        categories=categories.strip(),
        password_hash=hash_password(password),
        description="",
        is_payment_setup=False,
    )
    db.add(seller)
    await db.flush()
    logger.info(f"New seller registered: id={seller.id} store={seller.store_name!r}")
    return seller


async def login_user(db: AsyncSession, *, email: str, password: str) -> tuple[User, str]:
    """Returns (user, access_token)."""
    res = await db.execute(select(User).where(User.email == _normalize_email(email)))
    user = res.scalar_one_or_none()
    if not user:
        raise ValidationError("User not found")
    if not verify_password(password, user.password_hash):
        raise ValidationError("Invalid credentials")
    return user, issue_access_token(subject_id=user.id, role=Role.USER.value)


async def login_seller(db: AsyncSession, *, email: str, password: str) -> tuple[Seller, str]:
    """Returns (seller, access_token)."""
    res = await db.execute(select(Seller).where(Seller.email == _normalize_email(email)))
    seller = res.scalar_one_or_none()
    if not seller:
        raise ValidationError("Seller not found")
    if not verify_password(password, seller.password_hash):
        raise ValidationError("Invalid credentials")
    return seller, issue_access_token(subject_id=seller.id, role=Role.SELLER.value)


def user_profile(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "is_admin": user.is_admin,
    }


def seller_profile(seller: Seller) -> dict:
    return {
        "id": seller.id,
        "store_name": seller.store_name,
        "email": seller.email,
        "phone_number": seller.phone_number,
        "address": seller.address,
        "categories": seller.categories,
        "description": seller.description,
        "profile_image": seller.profile_image,
        "is_payment_setup": seller.is_payment_setup,
        "bank_details": {
            "bank_code": seller.bank_code,
            "account_number": seller.bank_account_number,
            "account_name": seller.bank_account_name,
            "bank_name": seller.bank_name,
        } if seller.is_payment_setup else None,
    }
