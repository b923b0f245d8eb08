"""Database session management for pressroom."""

from typing import AsyncGenerator
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from .engine import get_session_factory

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def get_database_session() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on success and rolls back on error."""
    session_factory = await get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.error("Database session rolled back due to exception")
            raise
