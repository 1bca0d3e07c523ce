"""
Database engine and session factories.

Engines are created from an explicit URL so that workers, the scheduler
and tests each own their connection lifecycle.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool


def create_engine(
    database_url: str, echo: bool = False, use_null_pool: bool = False
) -> AsyncEngine:
    """
    Create async engine.

    Args:
        database_url: SQLAlchemy async URL (postgresql+asyncpg://...)
        echo: Log SQL statements
        use_null_pool: Disable pooling (dramatiq worker threads)

    Returns:
        AsyncEngine instance
    """
    if use_null_pool:
        return create_async_engine(database_url, echo=echo, poolclass=NullPool)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
