"""
database.py - SQLAlchemy 2.0 async engine and session factory.

This module owns ALL database connection infrastructure.
Nothing else in the codebase creates engines or sessions directly.

Only the "document" storage backend uses it. The engine is built in the
FastAPI lifespan (not at import time) so the in-memory backend never needs a
database driver to be reachable.

Usage:
    from dotfeedback.database import create_engine, create_session_factory
    engine = create_engine(settings.database_url)
    factory = create_session_factory(engine)
    async with factory() as session: ...
"""
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from dotfeedback.config import settings


# ---------------------------------------------------------------------------
# Declarative base - ALL ORM models inherit from this
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base.
    All ORM models in dotfeedback/models/ inherit from Base.
    """
    pass


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Engine / session factory builders
# ---------------------------------------------------------------------------
def create_engine(database_url: str) -> AsyncEngine:
    """Build the async engine. Pool sizing applies to PostgreSQL only."""
    if database_url.startswith("postgresql"):
        return create_async_engine(
            database_url,
            echo=settings.debug,      # Logs SQL statements in debug mode
            pool_size=5,              # Core connection pool size
            max_overflow=10,          # Extra connections under peak load
            pool_pre_ping=True,       # Detect and discard stale connections before each use
        )
    return create_async_engine(database_url)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,   # Keep objects usable after commit without re-querying
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    # Import for side effect: registers every ORM class on Base.metadata
    import dotfeedback.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
