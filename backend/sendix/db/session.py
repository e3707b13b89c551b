"""
Database session management.

Provides async session factory and dependency injection for FastAPI.
"""
from collections.abc import AsyncGenerator

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from sendix.core.config import settings

logger = structlog.get_logger()


def _engine_kwargs(url: str) -> dict:
    # SQLite (local runs) does not take pool sizing or server settings
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "echo": settings.api_debug,
        "pool_pre_ping": True,  # Verify connections before using them
        "pool_size": 20,
        "max_overflow": 30,
        "pool_recycle": 1800,
        "pool_timeout": 20,
        "connect_args": {
            "server_settings": {
                "statement_timeout": "25000",
                "idle_in_transaction_session_timeout": "300000",
                "application_name": "sendix_core_api",
            },
            "command_timeout": 25,
        },
    }


engine = create_async_engine(
    settings.database_url_computed,
    **_engine_kwargs(settings.database_url_computed),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides an async database session.

    Commits on success, rolls back and logs on error.

    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            try:
                pool_info = {
                    "pool_size": engine.pool.size(),
                    "pool_checked_out": engine.pool.checkedout(),
                }
            except Exception:
                pool_info = {"pool_info": "unavailable"}
            logger.error(
                "Database session error",
                error=str(e),
                error_type=type(e).__name__,
                **pool_info
            )
            raise
