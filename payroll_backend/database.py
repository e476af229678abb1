"""Async SQLAlchemy engine, declarative base and session dependency."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from payroll_backend.config import settings


def _engine_options(url: str) -> dict[str, Any]:
    """Pool options for server databases; SQLite engines keep their default pool."""
    options: dict[str, Any] = {"echo": settings.ENVIRONMENT == "development"}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# The closing pipeline commits mid-operation and keeps using loaded rows.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all payroll ORM models."""
    pass


async def get_db() -> AsyncSession:
    """FastAPI dependency: yield a session, commit on success, roll back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
