"""Health check router for system monitoring."""

import time
from datetime import datetime, timezone
from typing import Dict, Any
from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from ..config.settings import get_settings
from ..database.engine import check_database_connection, get_database_info
from ..database.migrations import check_migration_status
from ..dependencies import get_llm_extractor

logger = structlog.get_logger(__name__)
router = APIRouter()

VERSION = "0.1.0"
SERVICE_NAME = "pressroom"
_STARTED_AT = time.time()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
async def health_check() -> Dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": VERSION,
        "service": SERVICE_NAME
    }


@router.get("/detailed")
async def detailed_health_check() -> Dict[str, Any]:
    """Detailed health check with component status."""
    settings = get_settings()

    db_healthy = await check_database_connection()
    db_info = await get_database_info()
    schema = await check_migration_status() if db_healthy else {"status": "unknown"}

    if not db_healthy:
        db_status = "unhealthy"
    elif schema.get("status") != "ok":
        db_status = "migrations_pending"
    else:
        db_status = "healthy"

    extractor = get_llm_extractor()
    components = {
        "database": {
            "status": db_status,
            "connection": "connected" if db_healthy else "disconnected",
            "schema": schema,
            "info": db_info
        },
        "llm": {
            "status": "configured" if extractor else "disabled",
            "provider": settings.llm.provider,
        },
        "webhook": {
            "api_key_required": bool(settings.ingestion.webhook_api_key),
            "default_agency_id": settings.ingestion.default_agency_id,
        },
    }

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "timestamp": _now(),
        "version": VERSION,
        "environment": settings.environment,
        "components": components,
        "uptime": f"{int(time.time() - _STARTED_AT)}s"
    }


@router.get("/ready")
async def readiness_check():
    """Readiness probe: the database must be reachable."""
    if not await check_database_connection():
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "timestamp": _now()}
        )
    return {
        "status": "ready",
        "timestamp": _now()
    }


@router.get("/live")
async def liveness_check() -> Dict[str, Any]:
    """Liveness check for Kubernetes health probes."""
    return {
        "status": "alive",
        "timestamp": _now()
    }
