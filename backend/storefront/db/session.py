from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storefront.core.config import settings


def engine_options(url: str) -> Dict[str, Any]:
    """
    Pool tuning for server databases. SQLite (local runs, tests) keeps the
    driver's default pool.
    """
    if make_url(url).get_backend_name() == "sqlite":
        return {}
    return {
        "pool_pre_ping": True,  # detects dead connections before using them
        "pool_recycle": 300,  # seconds
    }


# Use CLEAN URL to avoid asyncpg errors with sslmode/channel_binding query params.
DATABASE_URL_ASYNC = settings.DATABASE_URL_ASYNC_CLEAN

engine: AsyncEngine = create_async_engine(DATABASE_URL_ASYNC, echo=False, **engine_options(DATABASE_URL_ASYNC))

# Also used outside requests: role resolution opens its own sessions here.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    One AsyncSession per request, closed when the request completes.
    """
    async with AsyncSessionLocal() as session:
        yield session
