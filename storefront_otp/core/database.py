"""
Database Configuration

Async SQLAlchemy 2.0 setup. PostgreSQL with asyncpg in production;
any async driver SQLAlchemy supports works for local runs and tests.
"""

import logging
import ssl
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from storefront_otp.core.config import Settings


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    All models should inherit from this class.
    """
    pass


def build_ssl_context(settings: Settings) -> Optional[ssl.SSLContext]:
    """
    SSL context for database connections, or None when SSL is off.

    Certificates and hostnames are verified unless ``DATABASE_SSL_VERIFY``
    is turned off, which some managed poolers with self-signed
    certificates need.
    """
    if not settings.DATABASE_SSL:
        return None
    ssl_context = ssl.create_default_context()
    if not settings.DATABASE_SSL_VERIFY:
        logger.warning("Database SSL certificate verification is disabled")
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
    return ssl_context


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine from settings.

    Query parameters are stripped from the URL because asyncpg does not
    accept ``sslmode`` style options there; SSL is configured through
    ``connect_args`` instead.
    """
    db_url = settings.DATABASE_URL
    if "?" in db_url:
        db_url = db_url.split("?")[0]

    connect_args: Dict[str, Any] = {}
    ssl_context = build_ssl_context(settings)
    if ssl_context is not None:
        connect_args["ssl"] = ssl_context

    kwargs: Dict[str, Any] = {
        "echo": settings.DATABASE_ECHO,
        "pool_pre_ping": True,
        "connect_args": connect_args,
    }
    if db_url.startswith("postgresql"):
        kwargs.update(pool_size=5, max_overflow=10)

    return create_async_engine(db_url, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session maker bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize database tables.

    Note: In production, use Alembic migrations instead.
    This is useful for testing or initial development.
    """
    # Register every model on Base.metadata
    import storefront_otp.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
