"""Ingestion pipeline: one inbound email to stored, deduplicated media queries.

Job lifecycle::

    received -> parsing -> completed | needs_review | failed

Idempotency rests on the unique message-id constraint of the jobs table,
and duplicate records on the unique (agency, fingerprint) constraint of
the queries table. The pipeline itself keeps no state between calls.
"""

import json
import traceback
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config.ingestion import IngestionSettings, get_ingestion_settings
from ..database.models import IngestionJob
from ..database.repository import QueryStore, dump_list, load_list
from .deadlines import utc_now
from .deduplication import DeduplicationEngine, compute_fingerprint
from .detector import describe_source_type, detect_email_source
from .digest import DigestQueryParser
from .models import (
    CandidateQuery, DedupeAction, InboundEmail, IngestionResult, JobStatus, ParserResult,
    SourceDetectionResult, SourceType,
)
from .single import Extractor, SingleQueryParser
from .structured import StructuredQueryParser

logger = structlog.get_logger(__name__)


class IngestionPipeline:
    """Orchestrates detection, parsing, deduplication and persistence."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings: Optional[IngestionSettings] = None,
        llm_extractor: Optional[Extractor] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_ingestion_settings()
        self.clock = clock

        self.structured_parser = StructuredQueryParser(self.settings)
        self.digest_parser = DigestQueryParser(self.settings)
        self.single_parser = SingleQueryParser(self.settings, llm_extractor=llm_extractor)
        self.deduplication_engine = DeduplicationEngine(self.settings)

    async def process_webhook_email(self, agency_id: str, email: InboundEmail) -> IngestionResult:
        """Process one inbound email exactly once per message id."""
        if email.message_id:
            existing = await self._find_existing(email.message_id)
            if existing is not None:
                logger.info("Duplicate webhook delivery",
                            message_id=email.message_id,
                            ingestion_job_id=existing.id)
                return self._duplicate_result(existing)

        job_id = str(uuid4())
        try:
            await self._create_job(job_id, agency_id, email)
        except IntegrityError:
            # Lost a race with a concurrent delivery of the same message.
            existing = await self._find_existing(email.message_id) if email.message_id else None
            if existing is None:
                raise
            logger.info("Concurrent duplicate webhook delivery",
                        message_id=email.message_id,
                        ingestion_job_id=existing.id)
            return self._duplicate_result(existing)

        logger.info("Ingestion job created",
                    ingestion_job_id=job_id,
                    agency_id=agency_id,
                    message_id=email.message_id)

        detection = detect_email_source(email.subject, email.body_text, email.from_address)
        try:
            return await self._process_job(job_id, agency_id, email, detection)
        except Exception as exc:
            logger.error("Ingestion job failed",
                         ingestion_job_id=job_id,
                         agency_id=agency_id,
                         exc_info=exc)
            await self._mark_failed(job_id, exc)
            return IngestionResult(
                success=False,
                ingestion_job_id=job_id,
                source_type=detection.source_type,
                status=JobStatus.FAILED,
                errors=[str(exc)],
            )

    async def dry_run(self, subject: str, body_text: str, from_address: str) -> Dict[str, Any]:
        """Detection and parser output without persisting anything."""
        detection = detect_email_source(subject, body_text, from_address)
        parse_result = await self._run_parser(detection.source_type, body_text)
        return {
            "detection": detection.to_dict(),
            "source_description": describe_source_type(detection.source_type),
            "parse_result": parse_result.to_dict(),
        }

    async def _find_existing(self, message_id: str) -> Optional[IngestionJob]:
        async with self.session_factory() as session:
            return await QueryStore(session).get_job_by_message_id(message_id)

    def _duplicate_result(self, job: IngestionJob) -> IngestionResult:
        status = JobStatus(job.status)
        return IngestionResult(
            success=status != JobStatus.FAILED,
            ingestion_job_id=job.id,
            source_type=SourceType(job.source_type) if job.source_type else SourceType.OTHER,
            status=status,
            queries_created=job.queries_extracted,
            queries_merged=job.queries_merged,
            errors=load_list(job.parse_errors),
            duplicate=True,
        )

    async def _create_job(self, job_id: str, agency_id: str, email: InboundEmail) -> None:
        async with self.session_factory() as session:
            session.add(IngestionJob(
                id=job_id,
                agency_id=agency_id,
                email_from=email.from_address,
                email_to=email.to,
                email_subject=email.subject,
                email_body_text=email.body_text,
                email_body_html=email.body_html,
                email_received_at=email.received_at or self.clock(),
                email_message_id=email.message_id,
                email_has_attachments=email.has_attachments,
                folder_id=email.folder_id,
                thread_id=email.thread_id,
                status=JobStatus.RECEIVED.value,
                raw_payload=json.dumps(email.audit_payload()),
            ))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise

    async def _process_job(
        self, job_id: str, agency_id: str, email: InboundEmail, detection: SourceDetectionResult
    ) -> IngestionResult:
        async with self.session_factory() as session:
            store = QueryStore(session)

            job = await session.get(IngestionJob, job_id)
            job.source_type = detection.source_type.value
            job.source_confidence = round(detection.confidence, 4)
            job.status = JobStatus.PARSING.value
            job.processing_started_at = self.clock()
            await session.commit()

            logger.info("Email source detected",
                        ingestion_job_id=job_id,
                        source_type=detection.source_type.value,
                        confidence=round(detection.confidence, 4),
                        indicators=detection.indicators)

            parse_result = await self._run_parser(detection.source_type, email.body_text)

            created = 0
            merged = 0
            for candidate in parse_result.queries:
                if await self._store_candidate(session, store, agency_id, job_id, candidate):
                    created += 1
                else:
                    merged += 1

            status = JobStatus.COMPLETED if created > 0 else JobStatus.NEEDS_REVIEW
            job = await session.get(IngestionJob, job_id)
            job.status = status.value
            job.queries_extracted = created
            job.queries_merged = merged
            job.parse_errors = dump_list(parse_result.errors)
            job.processing_completed_at = self.clock()
            await session.commit()

        logger.info("Ingestion job finished",
                    ingestion_job_id=job_id,
                    status=status.value,
                    queries_created=created,
                    queries_merged=merged,
                    parse_errors=len(parse_result.errors))

        return IngestionResult(
            success=True,
            ingestion_job_id=job_id,
            source_type=detection.source_type,
            status=status,
            queries_created=created,
            queries_merged=merged,
            errors=list(parse_result.errors),
        )

    async def _run_parser(self, source_type: SourceType, body_text: str) -> ParserResult:
        now = self.clock()
        if source_type == SourceType.SOS:
            return self.structured_parser.parse(body_text)
        if source_type == SourceType.TMX_DIGEST:
            return self.digest_parser.parse(body_text, now=now)
        if source_type == SourceType.TMX_SINGLE:
            return await self.single_parser.parse(body_text, use_llm=False, now=now)
        return await self.single_parser.parse(body_text, use_llm=True, now=now)

    async def _store_candidate(
        self, session, store: QueryStore, agency_id: str, job_id: str, candidate: CandidateQuery
    ) -> bool:
        """Persist one candidate; False when it merged into an existing record."""
        candidate.dedupe_fingerprint = compute_fingerprint(
            candidate.outlet_name, candidate.headline, candidate.deadline_at, candidate.journalist_email
        )
        dedupe = await self.deduplication_engine.classify(store, agency_id, candidate.dedupe_fingerprint)
        candidate.dedupe_action = dedupe.action
        candidate.duplicate_of_query_id = dedupe.duplicate_of_id
        candidate.similar_query_ids = list(dedupe.similar_ids)

        if dedupe.action == DedupeAction.AUTO_MERGED:
            return False

        store.add_query(agency_id, job_id, candidate)
        try:
            await session.commit()
        except IntegrityError:
            # A concurrent job stored the same fingerprint first.
            await session.rollback()
            candidate.dedupe_action = DedupeAction.AUTO_MERGED
            candidate.duplicate_of_query_id = await store.find_by_fingerprint(agency_id, candidate.dedupe_fingerprint)
            logger.info("Fingerprint conflict resolved as merge",
                        ingestion_job_id=job_id,
                        fingerprint=candidate.dedupe_fingerprint,
                        duplicate_of=candidate.duplicate_of_query_id)
            return False
        return True

    async def _mark_failed(self, job_id: str, exc: Exception) -> None:
        """Record the failure in a fresh session; the original one may be unusable."""
        try:
            async with self.session_factory() as session:
                job = await session.get(IngestionJob, job_id)
                if job is None:
                    return
                job.status = JobStatus.FAILED.value
                job.error_message = str(exc) or type(exc).__name__
                job.error_details = json.dumps({
                    "type": type(exc).__name__,
                    "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                })
                job.processing_completed_at = self.clock()
                await session.commit()
        except Exception as record_exc:
            logger.error("Failed to record ingestion failure",
                         ingestion_job_id=job_id,
                         exc_info=record_exc)
