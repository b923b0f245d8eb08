"""Review and assignment workflow for parsed media queries."""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..database.repository import QueryStore, dump_list, job_to_dict, query_to_dict
from ..exceptions import JobNotFoundError, QueryNotFoundError
from ..ingestion.deadlines import utc_now
from ..ingestion.models import QueryStatus

logger = structlog.get_logger(__name__)


class ReviewService:
    """Tenant-scoped review actions over stored queries and jobs."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def list_pending(self, agency_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            queries = await QueryStore(session).list_queries(
                agency_id, QueryStatus.PENDING_REVIEW.value, limit=limit, offset=offset
            )
            return [query_to_dict(query) for query in queries]

    async def get_query(self, agency_id: str, query_id: str) -> Dict[str, Any]:
        """One query with its evidence rows."""
        async with self.session_factory() as session:
            query = await QueryStore(session).get_query(agency_id, query_id, with_evidence=True)
            if query is None:
                raise QueryNotFoundError(query_id, tenant_id=agency_id)
            return query_to_dict(query, include_evidence=True)

    async def approve(self, agency_id: str, query_id: str, reviewer_id: str, notes: Optional[str] = None) -> Dict[str, Any]:
        return await self._review(agency_id, query_id, reviewer_id, QueryStatus.APPROVED, notes)

    async def discard(self, agency_id: str, query_id: str, reviewer_id: str, notes: Optional[str] = None) -> Dict[str, Any]:
        return await self._review(agency_id, query_id, reviewer_id, QueryStatus.DISCARDED, notes)

    async def assign(self, agency_id: str, query_id: str, client_ids: List[str], assigned_by: str) -> Dict[str, Any]:
        """Assign a query to one or more clients."""
        async with self.session_factory() as session:
            query = await QueryStore(session).get_query(agency_id, query_id)
            if query is None:
                raise QueryNotFoundError(query_id, tenant_id=agency_id)

            query.status = QueryStatus.ASSIGNED.value
            query.assigned_client_ids = dump_list(client_ids)
            query.assigned_by = assigned_by
            query.assigned_at = utc_now()
            await session.commit()

            logger.info("Query assigned",
                        agency_id=agency_id,
                        query_id=query_id,
                        client_count=len(client_ids),
                        assigned_by=assigned_by)
            return query_to_dict(query)

    async def list_jobs(
        self, agency_id: str, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            jobs = await QueryStore(session).list_jobs(agency_id, status=status, limit=limit, offset=offset)
            return [job_to_dict(job) for job in jobs]

    async def get_job(self, agency_id: str, job_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            job = await QueryStore(session).get_job(agency_id, job_id)
            if job is None:
                raise JobNotFoundError(job_id, tenant_id=agency_id)
            return job_to_dict(job)

    async def _review(
        self, agency_id: str, query_id: str, reviewer_id: str, status: QueryStatus, notes: Optional[str]
    ) -> Dict[str, Any]:
        async with self.session_factory() as session:
            query = await QueryStore(session).get_query(agency_id, query_id)
            if query is None:
                raise QueryNotFoundError(query_id, tenant_id=agency_id)

            query.status = status.value
            query.reviewed_by = reviewer_id
            query.reviewed_at = utc_now()
            if notes is not None:
                query.review_notes = notes
            await session.commit()

            logger.info("Query reviewed",
                        agency_id=agency_id,
                        query_id=query_id,
                        status=status.value,
                        reviewer_id=reviewer_id)
            return query_to_dict(query)
