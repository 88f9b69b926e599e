"""
Database connection setup using async SQLAlchemy with PostgreSQL.

Provides the async engine, the session factory shared by route handlers
and background tasks, and the request-scoped session dependency.
"""

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    pool_size=settings.DATABASE_POOL_SIZE,
    echo=settings.DEBUG,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Base class for all Natural Order ORM models."""
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency yielding a session for one request.

    Commits when the handler returns normally and rolls back on any
    exception, so a rejected lifecycle operation never leaves partial
    writes behind.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def enum_values(enum_cls) -> list[str]:
    """Persist str enums by value so the DB labels match the API strings."""
    return [member.value for member in enum_cls]
