"""Async SQLAlchemy engine/session factories and declarative base.

The engine and session factory are built once at process start (see the
lifespan in ``staybook.main``) and handed to request handlers through
``app.state`` rather than living in module globals.
"""

import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from staybook.config import Settings


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the convention for all columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the application's async engine."""
    url = settings.async_database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.debug)
    return create_async_engine(
        url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at columns.

    Defaults are computed in Python so the values are available on the
    instance right after a flush without an extra round-trip.
    """

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class UUIDPrimaryKeyMixin:
    """Mixin that adds a UUID primary key column."""

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an async database session for FastAPI dependency injection.

    The session commits when the handler returns and rolls back if it raises.

    Usage::

        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
