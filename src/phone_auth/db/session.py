"""Async database session configuration."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from phone_auth.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import phone_auth.models  # noqa: E402,F401

engine = create_async_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for dependency injection."""
    async with SessionLocal() as session:
        yield session


async def create_tables(bind: AsyncEngine | None = None) -> None:
    """Create all database tables."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(bind: AsyncEngine | None = None) -> None:
    """Drop all database tables."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
