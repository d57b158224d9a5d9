"""Database session management for async SQLAlchemy.

This module provides async database session management using SQLAlchemy's
async engine and session factories. It's designed for use with FastAPI's
dependency injection system and with services that open their own short
sessions (the session store's database fallback, Celery cleanup tasks).
"""

import ssl
from typing import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from smartcommerce.config import get_config
from smartcommerce.logging_config import get_logger

logger = get_logger(__name__)


def _parse_database_url(url: str) -> tuple[str, dict]:
    """Parse the database URL and extract asyncpg-incompatible params.

    asyncpg doesn't support sslmode in the URL, so it is removed and
    converted to an SSL context for connect_args.

    Returns:
        Tuple of (cleaned_url, connect_args)
    """
    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)

    sslmode = query_params.pop("sslmode", [None])[0]

    new_query = urlencode({k: v[0] for k, v in query_params.items()}, doseq=False)
    cleaned_url = urlunparse((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        parsed.params,
        new_query,
        parsed.fragment,
    ))

    connect_args: dict = {}
    if sslmode in ("require", "verify-ca", "verify-full"):
        ssl_context = ssl.create_default_context()
        if sslmode == "require":
            # Encrypt without verifying the certificate
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context

    return cleaned_url, connect_args


_db_config = get_config().database
_cleaned_url, _connect_args = _parse_database_url(_db_config.url)

engine = create_async_engine(
    _cleaned_url,
    echo=_db_config.echo,
    pool_size=_db_config.pool_size,
    max_overflow=_db_config.max_overflow,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides a database session.

    Usage:
        @router.get("/addresses")
        async def list_addresses(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Address))
            return result.scalars().all()

    Yields:
        AsyncSession committed on success and rolled back on error.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Session factory for services that manage their own transactions."""
    return async_session_factory


def create_task_engine() -> AsyncEngine:
    """Unpooled engine for code that runs its own event loop (Celery tasks).

    Pooled asyncpg connections are bound to the loop that opened them, so
    each ``asyncio.run`` gets a fresh engine; dispose it when done.
    """
    return create_async_engine(
        _cleaned_url,
        echo=_db_config.echo,
        poolclass=NullPool,
        connect_args=_connect_args,
    )


async def init_db() -> None:
    """Verify database connectivity during application startup."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        raise


async def close_db() -> None:
    """Close database connections during application shutdown."""
    await engine.dispose()
    logger.info("Database connections closed")
