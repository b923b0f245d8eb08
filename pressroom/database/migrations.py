"""Migration utilities for the pressroom database."""

from typing import List, Optional
from sqlalchemy import inspect, text
import structlog

from .engine import get_database_engine
from .models import Base

logger = structlog.get_logger(__name__)


async def get_current_migration() -> Optional[str]:
    """Get the current Alembic revision, or None if migrations never ran."""
    try:
        engine = await get_database_engine()
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            if "alembic_version" not in tables:
                return None

            result = await conn.execute(text("SELECT version_num FROM alembic_version"))
            row = result.first()
            return row[0] if row else None

    except Exception as exc:
        logger.error("Failed to get current migration", exc_info=exc)
        return None


async def get_missing_tables() -> List[str]:
    """Model tables that do not exist in the database yet."""
    engine = await get_database_engine()
    async with engine.connect() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    return sorted(name for name in Base.metadata.tables if name not in existing)


async def check_migration_status() -> dict:
    """Check the overall schema status."""
    current = await get_current_migration()
    try:
        missing = await get_missing_tables()
    except Exception as exc:
        logger.error("Failed to inspect database tables", exc_info=exc)
        return {
            "current_migration": current,
            "status": "error",
            "error": str(exc)
        }

    return {
        "current_migration": current,
        "missing_tables": missing,
        "is_up_to_date": len(missing) == 0,
        "status": "ok" if not missing else "incomplete"
    }
