"""Database Session Management for the Message Router.

Provides:
- Async SQLAlchemy engine creation
- AsyncSession factory
- Database initialization and table creation
"""
from __future__ import annotations

from pathlib import Path

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from message_router.config import Settings, get_settings
from message_router.db.base import Base


# Global engine and session factory (initialized lazily)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with pooling suited to the database type.

    Connection pooling:
        - SQLite (dev): single connection, no pool sizing
        - PostgreSQL (prod): pool_size=5, max_overflow=10, pool_timeout=30
    """
    if "sqlite" in db_url and "///" in db_url:
        db_path = db_url.split("///")[1]
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if "sqlite" in db_url:
        return create_async_engine(
            db_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )

    return create_async_engine(
        db_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_pre_ping=True,
    )


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Get or create the async database engine.

    Returns:
        AsyncEngine instance configured from settings.
    """
    global _engine

    if _engine is None:
        settings = settings or get_settings()
        _engine = create_engine(settings.database.url, echo=settings.database.echo)

    return _engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory.

    Returns:
        Session factory configured for the application engine.
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_engine(settings))

    return _session_factory


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Initialize database and create all tables.

    Safe to call multiple times.
    """
    from message_router.db.models import RoutingRuleModel  # noqa: F401

    engine = engine or get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
