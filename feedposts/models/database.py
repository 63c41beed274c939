"""
SQLAlchemy database models for feedposts.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Feed state and posts
# =============================================================================

class DBFeedGenerator(Base):
    """Per-feed dedup metadata, keyed by the feed generator AT-URI."""
    __tablename__ = "feed_generators"

    aturi: Mapped[str] = mapped_column(String(512), primary_key=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), server_default=func.now(), onupdate=func.now()
    )


class DBPost(Base):
    """A fetched post, stored verbatim. Written once, never updated."""
    __tablename__ = "posts"

    uri: Mapped[str] = mapped_column(String(512), primary_key=True)
    post_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), server_default=func.now())


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str, pool_size: int = 90):
        engine_kwargs: dict[str, Any] = {"echo": False}
        if make_url(database_url).get_backend_name() != "sqlite":
            # Bounded connection pool shared by all workers
            engine_kwargs.update(pool_size=pool_size, max_overflow=0, pool_pre_ping=True)

        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self):
        """Drop all tables (use with caution!)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self):
        await self.engine.dispose()
