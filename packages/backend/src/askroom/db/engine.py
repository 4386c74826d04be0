"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
async_sessionmaker for per-operation sessions. The SQL store opens one
short session per store call; nothing holds a session across awaits on
the network or the fabric.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from askroom.config import Settings


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a database URL.

    SQLite (tests, local demos) gets a single shared connection so an
    in-memory database survives across sessions; Postgres gets a pool of
    min 5, max 20 connections.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=15,
        pool_pre_ping=True,
    )


def build_engine_from_settings(settings: Settings) -> AsyncEngine:
    return build_engine(settings.database_url, echo=settings.debug)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory — each store operation gets its own session."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
