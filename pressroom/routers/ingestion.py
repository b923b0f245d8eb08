"""Ingestion router: webhook intake, dry-run parsing and job monitoring."""

import hmac
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from ..config.settings import get_settings
from ..dependencies import get_ingestion_pipeline, get_review_service
from ..exceptions import WebhookUnauthorizedError, WebhookValidationError
from ..ingestion import IngestionPipeline
from ..ingestion.models import InboundEmail, JobStatus
from ..middleware.logging import get_trace_id
from ..middleware.tenant_isolation import get_tenant_id
from ..services.review import ReviewService

logger = structlog.get_logger(__name__)
router = APIRouter()

REQUIRED_WEBHOOK_FIELDS = ("from", "subject", "body_text")


class TestParseRequest(BaseModel):
    """Request model for dry-run parsing."""
    subject: str = Field(default="", description="Email subject line")
    body_text: str = Field(..., min_length=1, description="Plain-text email body")
    from_address: str = Field(default="", alias="from", description="Sender address")

    model_config = {"populate_by_name": True}


def _missing_fields(payload: Dict[str, Any]) -> List[str]:
    return [name for name in REQUIRED_WEBHOOK_FIELDS if not str(payload.get(name) or "").strip()]


def _check_api_key(request: Request, payload: Dict[str, Any], trace_id: Optional[str]) -> None:
    expected = get_settings().ingestion.webhook_api_key
    if not expected:
        return
    provided = payload.get("api_key") or request.headers.get("X-API-Key") or ""
    if not hmac.compare_digest(str(provided), expected):
        logger.warning("Invalid API key in webhook request", trace_id=trace_id)
        raise WebhookUnauthorizedError(trace_id=trace_id)


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    tenant_id: str = Depends(get_tenant_id),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """Receive one email from the email-to-webhook bridge."""
    trace_id = get_trace_id(request)

    missing = _missing_fields(payload)
    if missing:
        raise WebhookValidationError(missing, trace_id=trace_id)

    _check_api_key(request, payload, trace_id)

    try:
        email = InboundEmail.model_validate(payload)
    except ValidationError as exc:
        fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        raise WebhookValidationError(fields, trace_id=trace_id)

    logger.info("Received email webhook",
                trace_id=trace_id,
                tenant_id=tenant_id,
                subject=email.subject,
                message_id=email.message_id)

    result = await pipeline.process_webhook_email(tenant_id, email)
    body = {"success": result.success, "data": result.to_dict()}
    if not result.success:
        body["error"] = ", ".join(result.errors)
        return JSONResponse(status_code=500, content=body)
    return body


@router.post("/test")
async def test_parse(
    request: TestParseRequest,
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """Run detection and parsing without storing anything."""
    result = await pipeline.dry_run(request.subject, request.body_text, request.from_address)
    return {"success": True, "data": result}


@router.get("/jobs")
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    review_service: ReviewService = Depends(get_review_service),
):
    """Recent ingestion jobs for the calling agency."""
    jobs = await review_service.list_jobs(
        tenant_id, status=status.value if status else None, limit=limit, offset=offset
    )
    return {"success": True, "data": {"jobs": jobs, "count": len(jobs)}}


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    tenant_id: str = Depends(get_tenant_id),
    review_service: ReviewService = Depends(get_review_service),
):
    """One ingestion job with its parse errors and failure detail."""
    job = await review_service.get_job(tenant_id, job_id)
    return {"success": True, "data": job}
