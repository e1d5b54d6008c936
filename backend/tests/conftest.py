"""
Pytest configuration and shared fixtures for the Marketplace API tests.

Provides an in-memory SQLite DB, an httpx client bound to the FastAPI app,
sample accounts/products, and an AsyncMock'd Paystack client.
"""
import pytest
import pytest_asyncio
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from database import Base, get_db
from config import settings

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"
settings.environment = "development"
settings.paystack_secret_key = "sk_test_pytest_webhook_secret"


@pytest.fixture(autouse=True)
def reset_in_memory_state():
    """Rate-limit windows and the bank verification cache are process globals."""
    from middleware.rate_limit import reset_rate_limits
    from services import seller_service

    reset_rate_limits()
    seller_service.reset_verification_cache()
    yield
    reset_rate_limits()
    seller_service.reset_verification_cache()


@pytest.fixture
def live_mode(monkeypatch):
    """Switch payments to live mode (real transfer/recipient calls, still mocked)."""
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "paystack_secret_key", "sk_live_fixture_secret")
    yield


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx client against the app with the in-memory database.

    Overrides the get_db dependency to use the test DB session.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# ── Mock Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def mock_paystack():
    """Replace every Paystack call with an AsyncMock; tests set return values/side effects."""
    from paystack_client import paystack_client

    mocks = {
        "initialize_transaction": AsyncMock(
            return_value={
                "authorization_url": "https://checkout.paystack.com/abc123",
                "access_code": "abc123",
            }
        ),
        "verify_transaction": AsyncMock(),
        "create_transfer": AsyncMock(return_value={"transfer_code": "TRF_live_1", "status": "pending"}),
        "create_transfer_recipient": AsyncMock(return_value={"recipient_code": "RCP_live_1"}),
        "list_banks": AsyncMock(return_value=[]),
        "resolve_account": AsyncMock(return_value={"account_name": "ADA OKAFOR", "account_number": "0123456789"}),
    }
    patchers = [patch.object(paystack_client, name, mock) for name, mock in mocks.items()]
    for p in patchers:
        p.start()
    yield mocks
    for p in patchers:
        p.stop()


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
def auth_header():
    """auth_header(account, role) -> Authorization: Bearer header for that account."""
    from middleware.auth import issue_access_token

    def _header(account, role: str) -> dict:
        return {"Authorization": f"Bearer {issue_access_token(subject_id=account.id, role=role)}"}
    return _header


@pytest_asyncio.fixture
async def sample_user(db_session: AsyncSession):
    from db_models import User
    from middleware.auth import hash_password

    user = User(username="ada", email="ada@example.com", password_hash=hash_password("secret123"))
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession):
    from db_models import User
    from middleware.auth import hash_password

    user = User(username="root", email="admin@example.com", password_hash=hash_password("secret123"), is_admin=True)
    db_session.add(user)
    await db_session.commit()
    return user


async def _make_seller(db_session: AsyncSession, *, email: str, store_name: str, recipient_code: str | None):
    from db_models import Seller
    from middleware.auth import hash_password

    seller = Seller(
        store_name=store_name,
        email=email,
        phone_number="08030000000",
        address="12 Allen Avenue, Ikeja",
        categories="clothing",
        password_hash=hash_password("secret123"),
        description="",
        paystack_recipient_code=recipient_code,
        is_payment_setup=recipient_code is not None,
    )
    db_session.add(seller)
    await db_session.commit()
    return seller


@pytest_asyncio.fixture
async def sample_seller(db_session: AsyncSession):
    return await _make_seller(db_session, email="kemi@store.ng", store_name="Kemi Styles", recipient_code="RCP_kemi")


@pytest_asyncio.fixture
async def other_seller(db_session: AsyncSession):
    return await _make_seller(db_session, email="tunde@store.ng", store_name="Tunde Kicks", recipient_code="RCP_tunde")


@pytest_asyncio.fixture
async def unpaid_seller(db_session: AsyncSession):
    """A seller who never finished payout setup."""
    return await _make_seller(db_session, email="new@store.ng", store_name="New Store", recipient_code=None)


async def _make_product(db_session: AsyncSession, seller, **overrides):
    import json
    from db_models import Product

    fields = {
        "seller_id": seller.id,
        "title": "Ankara Shirt",
        "description": "Cotton shirt",
        "price": 2500.0,
        "category": "clothing",
        "images": json.dumps(["https://img.example/shirt.jpg"]),
        "stock": 5,
        "views": 0,
        "sales": 0,
        "is_featured": False,
    }
    fields.update(overrides)
    product = Product(**fields)
    db_session.add(product)
    await db_session.commit()
    return product


@pytest_asyncio.fixture
async def sample_product(db_session: AsyncSession, sample_seller):
    return await _make_product(db_session, sample_seller)


@pytest_asyncio.fixture
async def other_product(db_session: AsyncSession, other_seller):
    return await _make_product(
        db_session, other_seller, title="Leather Sandals", category="footwear", price=1000.0, stock=10
    )


@pytest.fixture
def make_product(db_session: AsyncSession):
    """Factory for extra products: await make_product(seller, title=..., ...)."""
    async def _factory(seller, **overrides):
        return await _make_product(db_session, seller, **overrides)
    return _factory


@pytest.fixture
def shipping_info() -> dict:
    return {
        "firstName": "Ada",
        "lastName": "Okafor",
        "email": "ada@example.com",
        "phone": "08031234567",
        "address": "5 Marina Road",
        "country": "Nigeria",
        "state": "Lagos",
        "city": "Lagos Island",
    }
