"""Async SQLAlchemy engine and session management."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(
    url: str,
    pool_size: int = 20,
    max_overflow: int = 10,
    statement_cache_size: int | None = None,
) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine``.

    ``statement_cache_size`` only applies to asyncpg; 0 is needed behind a
    transaction-pooling PgBouncer.
    """
    options: dict[str, Any] = {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "echo": False,
    }
    if statement_cache_size is not None and url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {"statement_cache_size": statement_cache_size}
    return options


async def init_db(
    url: str,
    pool_size: int = 20,
    max_overflow: int = 10,
    statement_cache_size: int | None = None,
) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = create_async_engine(url, **engine_options(url, pool_size, max_overflow, statement_cache_size))
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    async with _session_factory() as session:
        yield session
