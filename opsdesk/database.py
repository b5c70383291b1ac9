"""Async SQLAlchemy engine, session factory and the request-scoped session.

The request session commits once when the endpoint returns, so every
write a leave operation makes (request row, ledger rows, companion,
audit entries) lands in a single transaction or not at all.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from opsdesk.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
)

# Shared by the API and the accrual script
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for employees, ledger, leave and attendance tables."""
    pass


async def get_db() -> AsyncSession:
    """FastAPI dependency: one session (and transaction) per request."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
