"""Query store: persistence and lookups for jobs, parsed queries and evidence."""

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from .models import IngestionJob, ParsedQuery, ParseEvidence

logger = structlog.get_logger(__name__)


def dump_list(values: Optional[Iterable[Any]]) -> str:
    """Serialize a list attribute for a text column."""
    return json.dumps(list(values or []))


def load_list(raw: Optional[str]) -> List[Any]:
    """Inverse of ``dump_list``; tolerant of NULL and malformed text."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Stored list is not valid JSON", raw=raw[:80])
        return []
    return value if isinstance(value, list) else []


def load_dict(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return {"raw": raw}
    return value if isinstance(value, dict) else {"value": value}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def evidence_to_dict(evidence: ParseEvidence) -> Dict[str, Any]:
    return {
        "id": evidence.id,
        "field_name": evidence.field_name,
        "field_value": evidence.field_value,
        "excerpt": evidence.excerpt,
        "start_char": evidence.start_char,
        "end_char": evidence.end_char,
        "confidence": evidence.confidence,
    }


def query_to_dict(query: ParsedQuery, include_evidence: bool = False) -> Dict[str, Any]:
    """API view of a parsed query with list columns decoded."""
    data = {
        "id": query.id,
        "agency_id": query.agency_id,
        "ingestion_job_id": query.ingestion_job_id,
        "query_index": query.query_index,
        "headline": query.headline,
        "summary": query.summary,
        "category": query.category,
        "request_type": query.request_type,
        "query_text": query.query_text,
        "expert_roles": load_list(query.expert_roles),
        "expert_constraints": load_list(query.expert_constraints),
        "questions": load_list(query.questions),
        "deadline_date": query.deadline_date,
        "deadline_time": query.deadline_time,
        "deadline_timezone": query.deadline_timezone,
        "deadline_at": _iso(query.deadline_at),
        "is_hard_deadline": query.is_hard_deadline,
        "broadcast_scheduled_at": _iso(query.broadcast_scheduled_at),
        "broadcast_duration_minutes": query.broadcast_duration_minutes,
        "broadcast_format": query.broadcast_format,
        "journalist_name": query.journalist_name,
        "journalist_title": query.journalist_title,
        "journalist_email": query.journalist_email,
        "journalist_reply_alias": query.journalist_reply_alias,
        "journalist_profile_url": query.journalist_profile_url,
        "outlet_name": query.outlet_name,
        "outlet_website": query.outlet_website,
        "dedupe_fingerprint": query.dedupe_fingerprint,
        "dedupe_action": query.dedupe_action,
        "duplicate_of_query_id": query.duplicate_of_query_id,
        "similar_query_ids": load_list(query.similar_query_ids),
        "parse_confidence": query.parse_confidence,
        "parse_method": query.parse_method,
        "status": query.status,
        "reviewed_by": query.reviewed_by,
        "reviewed_at": _iso(query.reviewed_at),
        "review_notes": query.review_notes,
        "assigned_client_ids": load_list(query.assigned_client_ids),
        "assigned_by": query.assigned_by,
        "assigned_at": _iso(query.assigned_at),
        "created_at": _iso(query.created_at),
    }
    if include_evidence:
        data["evidence"] = [evidence_to_dict(item) for item in query.evidence]
    return data


def job_to_dict(job: IngestionJob) -> Dict[str, Any]:
    """API view of an ingestion job; the raw payload is left out."""
    return {
        "id": job.id,
        "agency_id": job.agency_id,
        "email_from": job.email_from,
        "email_subject": job.email_subject,
        "email_message_id": job.email_message_id,
        "email_received_at": _iso(job.email_received_at),
        "source_type": job.source_type,
        "source_confidence": job.source_confidence,
        "status": job.status,
        "queries_extracted": job.queries_extracted,
        "queries_merged": job.queries_merged,
        "parse_errors": load_list(job.parse_errors),
        "processing_started_at": _iso(job.processing_started_at),
        "processing_completed_at": _iso(job.processing_completed_at),
        "error_message": job.error_message,
        "error_details": load_dict(job.error_details),
        "created_at": _iso(job.created_at),
    }


class QueryStore:
    """Data access for one session; callers own commit and rollback."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_job_by_message_id(self, message_id: str) -> Optional[IngestionJob]:
        result = await self.session.execute(
            select(IngestionJob).where(IngestionJob.email_message_id == message_id)
        )
        return result.scalars().first()

    async def get_job(self, agency_id: str, job_id: str) -> Optional[IngestionJob]:
        result = await self.session.execute(
            select(IngestionJob).where(IngestionJob.id == job_id, IngestionJob.agency_id == agency_id)
        )
        return result.scalars().first()

    async def list_jobs(
        self, agency_id: str, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[IngestionJob]:
        statement = select(IngestionJob).where(IngestionJob.agency_id == agency_id)
        if status:
            statement = statement.where(IngestionJob.status == status)
        statement = statement.order_by(IngestionJob.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def find_by_fingerprint(self, agency_id: str, fingerprint: str) -> Optional[str]:
        """Id of the record with exactly this fingerprint, if any."""
        result = await self.session.execute(
            select(ParsedQuery.id).where(
                ParsedQuery.agency_id == agency_id,
                ParsedQuery.dedupe_fingerprint == fingerprint,
            ).limit(1)
        )
        return result.scalars().first()

    async def find_by_fingerprint_prefix(self, agency_id: str, prefix: str, limit: int) -> List[str]:
        """Ids of records whose fingerprint starts with ``prefix``, newest first."""
        result = await self.session.execute(
            select(ParsedQuery.id).where(
                ParsedQuery.agency_id == agency_id,
                ParsedQuery.dedupe_fingerprint.like(prefix + "%"),
            ).order_by(ParsedQuery.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    def add_query(self, agency_id: str, job_id: str, candidate) -> ParsedQuery:
        """Stage a ParsedQuery and its evidence rows from a parser candidate."""
        query = ParsedQuery(
            agency_id=agency_id,
            ingestion_job_id=job_id,
            query_index=candidate.query_index,
            headline=candidate.headline,
            summary=candidate.summary,
            category=candidate.category,
            request_type=candidate.request_type.value if candidate.request_type else None,
            query_text=candidate.query_text,
            expert_roles=dump_list(candidate.expert_roles),
            expert_constraints=dump_list(candidate.expert_constraints),
            questions=dump_list(candidate.questions),
            deadline_date=candidate.deadline_date,
            deadline_time=candidate.deadline_time,
            deadline_timezone=candidate.deadline_timezone,
            deadline_at=candidate.deadline_at,
            is_hard_deadline=candidate.is_hard_deadline,
            broadcast_scheduled_at=candidate.broadcast_scheduled_at,
            broadcast_duration_minutes=candidate.broadcast_duration_minutes,
            broadcast_format=candidate.broadcast_format,
            journalist_name=candidate.journalist_name,
            journalist_title=candidate.journalist_title,
            journalist_email=candidate.journalist_email,
            journalist_reply_alias=candidate.journalist_reply_alias,
            journalist_profile_url=candidate.journalist_profile_url,
            outlet_name=candidate.outlet_name,
            outlet_website=candidate.outlet_website,
            dedupe_fingerprint=candidate.dedupe_fingerprint,
            dedupe_action=candidate.dedupe_action.value,
            duplicate_of_query_id=candidate.duplicate_of_query_id,
            similar_query_ids=dump_list(candidate.similar_query_ids),
            parse_confidence=round(candidate.parse_confidence, 4),
            parse_method=candidate.parse_method.value,
            evidence=[
                ParseEvidence(
                    field_name=item.field_name,
                    field_value=item.field_value,
                    excerpt=item.excerpt,
                    start_char=item.start_char,
                    end_char=item.end_char,
                    confidence=item.confidence,
                )
                for item in candidate.evidence
            ],
        )
        self.session.add(query)
        return query

    async def get_query(self, agency_id: str, query_id: str, with_evidence: bool = False) -> Optional[ParsedQuery]:
        statement = select(ParsedQuery).where(ParsedQuery.id == query_id, ParsedQuery.agency_id == agency_id)
        if with_evidence:
            statement = statement.options(selectinload(ParsedQuery.evidence))
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def list_queries(
        self, agency_id: str, status: str, limit: int = 50, offset: int = 0
    ) -> List[ParsedQuery]:
        """Queries in a review status, soonest deadline first."""
        result = await self.session.execute(
            select(ParsedQuery)
            .where(ParsedQuery.agency_id == agency_id, ParsedQuery.status == status)
            .order_by(ParsedQuery.deadline_at.asc().nulls_last(), ParsedQuery.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())
