"""Tenant (agency) resolution middleware."""

from typing import Callable, Optional
from fastapi import Request, Response, HTTPException, status
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from ..config.settings import get_settings

logger = structlog.get_logger(__name__)

PUBLIC_PATH_PREFIXES = ("/health", "/docs", "/redoc", "/openapi.json")

# Bridge-facing endpoints fall back to the configured default agency.
DEFAULT_TENANT_PATHS = ("/ingest/webhook", "/ingest/test")


def resolve_tenant_id(request: Request) -> Optional[str]:
    """Resolve the agency id from the X-Tenant-ID header or ?tenant= query parameter."""
    tenant_id = request.headers.get("X-Tenant-ID") or request.query_params.get("tenant")
    if tenant_id and tenant_id.strip():
        return tenant_id.strip()
    return None


class TenantIsolationMiddleware(BaseHTTPMiddleware):
    """Attaches the resolved agency id to request state; rejects requests without one."""

    def __init__(self, app, default_tenant_id: Optional[str] = None):
        super().__init__(app)
        self.default_tenant_id = default_tenant_id

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if self._is_public_endpoint(path):
            return await call_next(request)

        tenant_id = resolve_tenant_id(request)
        if not tenant_id and path in DEFAULT_TENANT_PATHS:
            tenant_id = self.default_tenant_id or get_settings().ingestion.default_agency_id

        if not tenant_id:
            logger.warning(
                "Missing tenant ID",
                path=path,
                method=request.method,
            )
            return Response(
                content='{"detail": "Missing or invalid tenant"}',
                status_code=status.HTTP_401_UNAUTHORIZED,
                media_type="application/json"
            )

        request.state.tenant_id = tenant_id

        response = await call_next(request)
        response.headers["X-Tenant-Resolved"] = tenant_id
        return response

    def _is_public_endpoint(self, path: str) -> bool:
        """Check if endpoint is public (no tenant required)."""
        return path == "/" or any(path.startswith(prefix) for prefix in PUBLIC_PATH_PREFIXES)


def get_tenant_id(request: Request) -> str:
    """Get tenant ID from request state."""
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Tenant ID not found in request"
        )
    return tenant_id
