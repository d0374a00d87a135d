"""Database connection and session management."""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str):
    """Resolve the async driver URL and engine keyword arguments."""
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("sqlite://"):
        database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    if database_url.startswith("sqlite"):
        # SQLite pools do not accept sizing arguments
        return database_url, {}

    options = {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": settings.db_pool_recycle,
        "pool_reset_on_return": 'rollback',
    }
    if database_url.startswith("postgresql+asyncpg://"):
        options["connect_args"] = {
            "server_settings": {
                "application_name": "newspaper_archive",
                "statement_timeout": str(settings.db_statement_timeout),
            },
            "command_timeout": 60,
        }
    return database_url, options


def create_engine_for(database_url: str):
    """Create an async engine for the given database URL."""
    url, options = _engine_options(database_url)
    return create_async_engine(url, echo=False, future=True, **options)


def create_session_factory(bind) -> sessionmaker:
    """Create an async session factory bound to an engine."""
    return sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=True,
        autocommit=False
    )


engine = create_engine_for(settings.database_url)

AsyncSessionLocal = create_session_factory(engine)

# Base class for models
Base = declarative_base()


async def init_db(bind=None):
    """Create tables for all registered models."""
    from . import models  # noqa

    bind = bind or engine
    logger.info("🔧 Checking database initialization...")

    try:
        if settings.allow_create_all:
            async with bind.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        else:
            logger.info("Skipping Base.metadata.create_all() because ALLOW_CREATE_ALL is false")

        async with bind.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("✅ Database initialized")

    except Exception as init_error:
        logger.error(f"❌ Database initialization failed: {init_error}")
        raise RuntimeError(f"Database initialization failed: {init_error}") from init_error


async def close_db_engine():
    """Properly close database engine and all connections."""
    try:
        await engine.dispose()
        logger.info("✅ Database engine disposed and all connections closed")
    except Exception as e:
        logger.error(f"❌ Error closing database engine: {e}")
