"""
Database engine and session management for the Marketplace API.

SQLAlchemy async engine over aiosqlite. Tables are created on startup via
init_db(); there are no migrations.

Routes own the transaction: services only flush, the route commits once the
whole operation succeeded, and anything uncommitted is rolled back when the
request's session closes.
"""
import logging

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _async_url(url: str) -> str:
    """sqlite:///... -> sqlite+aiosqlite:///... ; other URLs pass through."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # Order lines keep their snapshot when a product row is deleted (ON DELETE SET NULL)
    if "sqlite" not in type(dbapi_connection).__module__:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = create_async_engine(_async_url(settings.database_url), echo=False)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create all tables. Called once on server startup."""
    import db_models  # noqa: F401  (registers the tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created (or already exist)")


async def ping_db(db: AsyncSession) -> bool:
    await db.execute(text("SELECT 1"))
    return True


async def get_db() -> AsyncSession:
    """FastAPI dependency: one session per request."""
    async with async_session() as session:
        yield session
