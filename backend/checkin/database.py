"""
Database connection and session management.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from checkin.config import get_settings

settings = get_settings()


def normalize_database_url(url: str) -> str:
    """Convert a plain PostgreSQL URL to its asyncpg variant."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite gets a busy timeout and no pooling so that concurrent sessions
    contend on the database file lock instead of sharing one connection.
    """
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            poolclass=NullPool,
            connect_args={"timeout": 30},
        )
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Create async engine
engine = build_engine(settings.database_url, echo=settings.debug)

# Session factory
async_session_maker = build_session_maker(engine)

# Base class for models
Base = declarative_base()


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Dependency that provides the session factory.

    Services that retry whole transactions open one session per attempt.
    """
    return async_session_maker


async def init_db(bind: AsyncEngine = engine) -> None:
    """Initialize database tables."""
    # Register every model on Base.metadata
    import checkin.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
