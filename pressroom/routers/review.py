"""Review router: pending queue, query detail and review actions."""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, Field

from ..dependencies import get_review_service
from ..exceptions import ReviewerRequiredError, WebhookValidationError
from ..middleware.logging import get_trace_id
from ..middleware.tenant_isolation import get_tenant_id
from ..services.review import ReviewService

logger = structlog.get_logger(__name__)
router = APIRouter()


class ReviewRequest(BaseModel):
    """Optional reviewer notes for approve/discard."""
    notes: Optional[str] = Field(default=None, description="Reviewer notes")


class AssignRequest(BaseModel):
    """Clients to assign a query to."""
    client_ids: List[str] = Field(default_factory=list, description="Client ids")


def get_reviewer_id(request: Request, x_user_id: Optional[str] = Header(default=None)) -> str:
    """Reviewer identity from the X-User-ID header."""
    if not x_user_id or not x_user_id.strip():
        raise ReviewerRequiredError(trace_id=get_trace_id(request))
    return x_user_id.strip()


@router.get("/pending")
async def list_pending(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    review_service: ReviewService = Depends(get_review_service),
):
    """Queries awaiting review, soonest deadline first."""
    queries = await review_service.list_pending(tenant_id, limit=limit, offset=offset)
    return {"success": True, "data": {"queries": queries, "count": len(queries)}}


@router.get("/queries/{query_id}")
async def get_query(
    query_id: str,
    tenant_id: str = Depends(get_tenant_id),
    review_service: ReviewService = Depends(get_review_service),
):
    """One parsed query with its evidence."""
    query = await review_service.get_query(tenant_id, query_id)
    return {"success": True, "data": query}


@router.post("/queries/{query_id}/approve")
async def approve_query(
    query_id: str,
    body: Optional[ReviewRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    reviewer_id: str = Depends(get_reviewer_id),
    review_service: ReviewService = Depends(get_review_service),
):
    query = await review_service.approve(tenant_id, query_id, reviewer_id, body.notes if body else None)
    return {"success": True, "data": query}


@router.post("/queries/{query_id}/discard")
async def discard_query(
    query_id: str,
    body: Optional[ReviewRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    reviewer_id: str = Depends(get_reviewer_id),
    review_service: ReviewService = Depends(get_review_service),
):
    query = await review_service.discard(tenant_id, query_id, reviewer_id, body.notes if body else None)
    return {"success": True, "data": query}


@router.post("/queries/{query_id}/assign")
async def assign_query(
    query_id: str,
    request: Request,
    body: AssignRequest,
    tenant_id: str = Depends(get_tenant_id),
    reviewer_id: str = Depends(get_reviewer_id),
    review_service: ReviewService = Depends(get_review_service),
):
    """Assign a query to clients; at least one client id is required."""
    client_ids = [client_id for client_id in body.client_ids if client_id and client_id.strip()]
    if not client_ids:
        raise WebhookValidationError(["client_ids"], trace_id=get_trace_id(request))

    query = await review_service.assign(tenant_id, query_id, client_ids, reviewer_id)
    return {"success": True, "data": query}
