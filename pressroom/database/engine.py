"""Database engine configuration for pressroom."""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy import text
import structlog

from ..config.settings import get_settings
from .models import Base

logger = structlog.get_logger(__name__)

# Global engine instance
_database_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker | None = None


def get_database_url() -> str:
    """Get database connection URL from settings."""
    settings = get_settings()
    return settings.database.url


def _mask_url(database_url: str) -> str:
    if "@" not in database_url:
        return database_url
    return database_url.replace(database_url.split('@')[-1], '***')


def build_engine(database_url: str, echo: bool = False, pool_size: int = 10, max_overflow: int = 20) -> AsyncEngine:
    """Create an async engine suited to the URL's backend.

    Pool sizing only applies to server databases; SQLite gets a static or null pool.
    """
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url:
            # A single shared connection keeps the in-memory database alive.
            return create_async_engine(
                database_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(database_url, echo=echo, poolclass=NullPool)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {
                "application_name": "pressroom"
            }
        }
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_database_engine() -> AsyncEngine:
    """Get or create the database engine."""
    global _database_engine

    if _database_engine is None:
        settings = get_settings()
        database_url = settings.database.url

        logger.info("Creating database engine", url=_mask_url(database_url))
        _database_engine = build_engine(
            database_url,
            echo=settings.database.echo,
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
        )
        logger.info("Database engine created successfully")

    return _database_engine


async def get_session_factory() -> async_sessionmaker:
    """Get or create the session factory."""
    global _session_factory

    if _session_factory is None:
        engine = await get_database_engine()
        _session_factory = build_session_factory(engine)

        logger.info("Session factory created successfully")

    return _session_factory


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    engine = engine or await get_database_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured", tables=sorted(Base.metadata.tables))


async def check_database_connection() -> bool:
    """Check if database is accessible."""
    try:
        engine = await get_database_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.error("Database connection check failed", exc_info=exc)
        return False


async def get_database_info() -> dict:
    """Get backend dialect and connection status."""
    try:
        engine = await get_database_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {
            "dialect": engine.dialect.name,
            "driver": engine.dialect.driver,
            "status": "connected"
        }
    except Exception as exc:
        logger.error("Failed to get database info", exc_info=exc)
        return {
            "status": "error",
            "error": str(exc)
        }


async def close_database_engine():
    """Close the database engine."""
    global _database_engine, _session_factory

    _session_factory = None

    if _database_engine:
        await _database_engine.dispose()
        _database_engine = None
        logger.info("Database engine closed")
