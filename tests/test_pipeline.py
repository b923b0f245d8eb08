"""Tests for the ingestion orchestrator against an in-memory store."""

import json
from datetime import datetime
from unittest.mock import AsyncMock, Mock, patch

import pytest
from sqlalchemy import func, select

from pressroom.database.models import IngestionJob, ParsedQuery, ParseEvidence
from pressroom.ingestion.models import DedupeAction, InboundEmail, JobStatus, SourceType
from pressroom.ingestion.pipeline import IngestionPipeline

from email_samples import (
    DIGEST_BODY,
    DIGEST_FROM,
    DIGEST_SUBJECT,
    FIXED_NOW,
    SINGLE_BODY,
    SINGLE_FROM,
    SINGLE_SUBJECT,
    SOS_BODY,
    SOS_BODY_PARTIAL,
    SOS_FROM,
    SOS_SUBJECT,
    UNRECOGNISED_BODY,
    make_payload,
)


def make_email(body, subject, sender, message_id=None, **extra):
    payload = make_payload(body, subject, sender, message_id)
    payload.update(extra)
    return InboundEmail.model_validate(payload)


async def count(session_factory, model):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


async def all_queries(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(ParsedQuery).order_by(ParsedQuery.query_index))
        return list(result.scalars().all())


class TestEndToEnd:
    """Full webhook processing for each source type."""

    @pytest.fixture
    def pipeline(self, session_factory, settings):
        return IngestionPipeline(session_factory, settings, clock=lambda: FIXED_NOW)

    @pytest.mark.asyncio
    async def test_structured_email_creates_one_record_per_block(self, pipeline, session_factory):
        email = make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-sos-1")

        result = await pipeline.process_webhook_email("agency_1", email)

        assert result.success is True
        assert result.duplicate is False
        assert result.source_type == SourceType.SOS
        assert result.status == JobStatus.COMPLETED
        assert result.queries_created == 2
        assert result.queries_merged == 0

        queries = await all_queries(session_factory)
        assert len(queries) == 2
        assert len({query.dedupe_fingerprint for query in queries}) == 2
        assert all(query.dedupe_action != DedupeAction.AUTO_MERGED.value for query in queries)
        assert all(query.agency_id == "agency_1" for query in queries)
        assert all(query.status == "pending_review" for query in queries)
        assert await count(session_factory, ParseEvidence) == 8

    @pytest.mark.asyncio
    async def test_malformed_block_does_not_fail_the_email(self, pipeline, session_factory):
        email = make_email(SOS_BODY_PARTIAL, SOS_SUBJECT, SOS_FROM, message_id="msg-sos-partial")

        result = await pipeline.process_webhook_email("agency_1", email)

        assert result.success is True
        assert result.status == JobStatus.COMPLETED
        assert result.queries_created == 3

        async with session_factory() as session:
            job = await session.get(IngestionJob, result.ingestion_job_id)

        assert job.status == "completed"
        assert job.queries_extracted == 3
        errors = json.loads(job.parse_errors)
        assert len(errors) == 1
        assert errors[0].startswith("Query block 4")
        assert await count(session_factory, ParsedQuery) == 3

    @pytest.mark.asyncio
    async def test_job_row_records_outcome(self, pipeline, session_factory):
        email = make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-sos-2", api_key="secret")
        result = await pipeline.process_webhook_email("agency_1", email)

        async with session_factory() as session:
            job = await session.get(IngestionJob, result.ingestion_job_id)

        assert job.status == "completed"
        assert job.source_type == "SOS"
        assert job.source_confidence == pytest.approx(1.0)
        assert job.queries_extracted == 2
        assert json.loads(job.parse_errors) == []
        assert job.processing_started_at is not None
        assert job.processing_completed_at is not None
        raw = json.loads(job.raw_payload)
        assert raw["message_id"] == "msg-sos-2"
        assert "api_key" not in raw

    @pytest.mark.asyncio
    async def test_digest_email(self, pipeline, session_factory):
        email = make_email(DIGEST_BODY, DIGEST_SUBJECT, DIGEST_FROM, message_id="msg-digest")

        result = await pipeline.process_webhook_email("agency_1", email)

        assert result.source_type == SourceType.TMX_DIGEST
        assert result.status == JobStatus.COMPLETED
        assert result.queries_created == 2
        queries = await all_queries(session_factory)
        assert [query.outlet_name for query in queries] == ["NBC NEWS", "Newsmax"]

    @pytest.mark.asyncio
    async def test_single_email(self, pipeline, session_factory):
        email = make_email(SINGLE_BODY, SINGLE_SUBJECT, SINGLE_FROM, message_id="msg-single")

        result = await pipeline.process_webhook_email("agency_1", email)

        assert result.source_type == SourceType.TMX_SINGLE
        assert result.queries_created == 1
        query = (await all_queries(session_factory))[0]
        assert query.outlet_name == "Daily Mail"
        assert query.parse_method == "regex"
        assert json.loads(query.questions) == [
            "Why are grocery prices still rising?",
            "How can families cut holiday food costs?",
        ]

    @pytest.mark.asyncio
    async def test_single_email_with_possessive_weekday_deadline(self, pipeline, session_factory):
        body = SINGLE_BODY.replace("We're hoping to have responses by 3 PM EST.", "Please respond by Friday's end of day.")
        email = make_email(body, SINGLE_SUBJECT, SINGLE_FROM, message_id="msg-single-friday")

        result = await pipeline.process_webhook_email("agency_1", email)

        assert result.status == JobStatus.COMPLETED
        assert result.queries_created == 1
        query = (await all_queries(session_factory))[0]
        assert query.is_hard_deadline is True
        assert query.deadline_at.replace(tzinfo=None) == datetime(2025, 11, 21, 22, 0)

    @pytest.mark.asyncio
    async def test_unrecognised_email_needs_review(self, pipeline, session_factory):
        email = make_email(UNRECOGNISED_BODY, "Quick request", "someone@example.com")

        result = await pipeline.process_webhook_email("agency_1", email)

        assert result.success is True
        assert result.source_type == SourceType.OTHER
        assert result.status == JobStatus.NEEDS_REVIEW
        assert result.queries_created == 0
        assert result.errors == ["No media request fields recognised"]
        assert await count(session_factory, ParsedQuery) == 0


class TestIdempotency:
    """A message id is processed at most once."""

    @pytest.fixture
    def pipeline(self, session_factory, settings):
        return IngestionPipeline(session_factory, settings, clock=lambda: FIXED_NOW)

    @pytest.mark.asyncio
    async def test_redelivery_returns_original_outcome(self, pipeline, session_factory):
        email = make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-dup")

        first = await pipeline.process_webhook_email("agency_1", email)
        second = await pipeline.process_webhook_email("agency_1", email)

        assert second.duplicate is True
        assert second.ingestion_job_id == first.ingestion_job_id
        assert second.status == first.status
        assert second.queries_created == first.queries_created
        assert await count(session_factory, IngestionJob) == 1
        assert await count(session_factory, ParsedQuery) == 2

    @pytest.mark.asyncio
    async def test_same_content_new_message_id_auto_merges(self, pipeline, session_factory):
        await pipeline.process_webhook_email(
            "agency_1", make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-a")
        )
        result = await pipeline.process_webhook_email(
            "agency_1", make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-b")
        )

        assert result.duplicate is False
        assert result.queries_created == 0
        assert result.queries_merged == 2
        assert result.status == JobStatus.NEEDS_REVIEW
        assert await count(session_factory, ParsedQuery) == 2
        assert await count(session_factory, IngestionJob) == 2

    @pytest.mark.asyncio
    async def test_same_content_other_tenant_is_stored(self, pipeline, session_factory):
        await pipeline.process_webhook_email(
            "agency_1", make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-t1")
        )
        result = await pipeline.process_webhook_email(
            "agency_2", make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-t2")
        )

        assert result.queries_created == 2
        assert await count(session_factory, ParsedQuery) == 4

    @pytest.mark.asyncio
    async def test_changed_deadline_suggests_merge(self, pipeline, session_factory):
        await pipeline.process_webhook_email(
            "agency_1", make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-c1")
        )
        updated = SOS_BODY.replace("DEADLINE DATE: 2025-12-17", "DEADLINE DATE: 2025-12-20")
        result = await pipeline.process_webhook_email(
            "agency_1", make_email(updated, SOS_SUBJECT, SOS_FROM, message_id="msg-c2")
        )

        assert result.queries_created == 1
        assert result.queries_merged == 1

        queries = await all_queries(session_factory)
        suggested = [query for query in queries if query.dedupe_action == DedupeAction.MERGE_SUGGESTED.value]
        assert len(suggested) == 1
        original = next(query for query in queries
                        if query.dedupe_action == DedupeAction.NONE.value and query.query_index == 1)
        assert json.loads(suggested[0].similar_query_ids) == [original.id]


class TestFailureHandling:
    """Unexpected errors mark the job failed with diagnostics."""

    @pytest.mark.asyncio
    async def test_parser_crash_marks_job_failed(self, session_factory, settings):
        pipeline = IngestionPipeline(session_factory, settings, clock=lambda: FIXED_NOW)
        email = make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-crash")

        with patch.object(pipeline.structured_parser, "parse", Mock(side_effect=RuntimeError("boom"))):
            result = await pipeline.process_webhook_email("agency_1", email)

        assert result.success is False
        assert result.status == JobStatus.FAILED
        assert result.source_type == SourceType.SOS
        assert result.errors == ["boom"]

        async with session_factory() as session:
            job = await session.get(IngestionJob, result.ingestion_job_id)
        assert job.status == "failed"
        assert job.error_message == "boom"
        details = json.loads(job.error_details)
        assert details["type"] == "RuntimeError"
        assert "boom" in details["traceback"]
        assert await count(session_factory, ParsedQuery) == 0

    @pytest.mark.asyncio
    async def test_failed_job_redelivery_is_reported_as_failed(self, session_factory, settings):
        pipeline = IngestionPipeline(session_factory, settings, clock=lambda: FIXED_NOW)
        email = make_email(SOS_BODY, SOS_SUBJECT, SOS_FROM, message_id="msg-crash-2")

        with patch.object(pipeline.structured_parser, "parse", Mock(side_effect=RuntimeError("boom"))):
            await pipeline.process_webhook_email("agency_1", email)
        again = await pipeline.process_webhook_email("agency_1", email)

        assert again.duplicate is True
        assert again.success is False
        assert again.status == JobStatus.FAILED


class TestDryRun:

    @pytest.mark.asyncio
    async def test_dry_run_stores_nothing(self, session_factory, settings):
        pipeline = IngestionPipeline(session_factory, settings, clock=lambda: FIXED_NOW)

        result = await pipeline.dry_run(DIGEST_SUBJECT, DIGEST_BODY, DIGEST_FROM)

        assert result["detection"]["source_type"] == "TMX_DIGEST"
        assert result["source_description"].startswith("TMX Messenger")
        assert len(result["parse_result"]["queries"]) == 2
        assert result["parse_result"]["queries"][0]["broadcast_scheduled_at"] == "2025-11-29T23:00:00+00:00"
        assert await count(session_factory, IngestionJob) == 0

    @pytest.mark.asyncio
    async def test_unknown_source_uses_llm_when_configured(self, session_factory, settings):
        extractor = Mock()
        extractor.name = "mock"
        extractor.extract = AsyncMock(return_value=json.dumps({"outlet": "WBUR", "confidence": 0.9}))
        pipeline = IngestionPipeline(session_factory, settings, llm_extractor=extractor,
                                     clock=lambda: FIXED_NOW)

        result = await pipeline.dry_run("Quick request", UNRECOGNISED_BODY, "someone@example.com")

        extractor.extract.assert_awaited_once()
        assert result["parse_result"]["parse_method"] == "llm"

    @pytest.mark.asyncio
    async def test_single_tmx_source_never_uses_llm(self, session_factory, settings):
        extractor = Mock()
        extractor.name = "mock"
        extractor.extract = AsyncMock(return_value="{}")
        pipeline = IngestionPipeline(session_factory, settings, llm_extractor=extractor,
                                     clock=lambda: FIXED_NOW)

        await pipeline.dry_run("Newsroom request", "Reply to send+1.2@tmxmessenger.com", "someone@example.com")

        extractor.extract.assert_not_called()
