"""Tests for the free-form single-query parser and its LLM fallback."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from pressroom.exceptions import LlmExtractionError
from pressroom.ingestion.models import ParseMethod, RequestType
from pressroom.ingestion.single import SingleQueryParser, infer_category, strip_code_fence

from email_samples import FIXED_NOW, SINGLE_BODY, UNRECOGNISED_BODY, WEAK_SINGLE_BODY


def make_extractor(response=None, error=None):
    extractor = Mock()
    extractor.name = "mock"
    extractor.extract = AsyncMock(return_value=response, side_effect=error)
    return extractor


class TestRegexExtraction:
    """Deterministic pass over prose requests."""

    @pytest.fixture
    def parser(self, settings):
        return SingleQueryParser(settings)

    @pytest.mark.asyncio
    async def test_full_request(self, parser):
        result = await parser.parse(SINGLE_BODY, now=FIXED_NOW)
        query = result.queries[0]

        assert result.success is True
        assert result.parse_method == ParseMethod.REGEX
        assert result.parse_confidence == pytest.approx(0.85)
        assert query.query_index == 0
        assert query.outlet_name == "Daily Mail"
        assert query.journalist_title == "consumer reporter"
        assert query.headline == "rising grocery prices during the holidays"
        assert query.journalist_reply_alias == "send+50001.22001@tmxmessenger.com"
        assert query.expert_roles == ["financial planners", "economists"]
        assert query.questions == [
            "Why are grocery prices still rising?",
            "How can families cut holiday food costs?",
        ]

    @pytest.mark.asyncio
    async def test_deadline_resolved_in_named_zone(self, parser):
        query = (await parser.parse(SINGLE_BODY, now=FIXED_NOW)).queries[0]

        assert query.deadline_at == datetime(2025, 11, 20, 20, 0, tzinfo=timezone.utc)
        assert query.is_hard_deadline is True

    @pytest.mark.asyncio
    async def test_weekday_deadline_defaults_to_end_of_business(self, parser):
        body = WEAK_SINGLE_BODY + " Please respond by Friday."
        query = (await parser.parse(body, now=FIXED_NOW)).queries[0]

        # 2025-11-20 is a Thursday; 17:00 Eastern on Friday is 22:00 UTC.
        assert query.deadline_at == datetime(2025, 11, 21, 22, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_month_day_deadline(self, parser):
        body = WEAK_SINGLE_BODY + " We need answers before December 3."
        query = (await parser.parse(body, now=FIXED_NOW)).queries[0]

        assert query.deadline_at == datetime(2025, 12, 3, 22, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("sentence,expected", [
        ("Please respond by Friday's end of day.", datetime(2025, 11, 21, 22, 0, tzinfo=timezone.utc)),
        ("Please respond by Friday!", datetime(2025, 11, 21, 22, 0, tzinfo=timezone.utc)),
        ("Send thoughts before Monday; thanks.", datetime(2025, 11, 24, 22, 0, tzinfo=timezone.utc)),
        ("Please respond by Friday at 10 am PST.", datetime(2025, 11, 21, 18, 0, tzinfo=timezone.utc)),
        ("Reply no later than Tuesday, we have 3 slots.", datetime(2025, 11, 25, 22, 0, tzinfo=timezone.utc)),
    ])
    @pytest.mark.asyncio
    async def test_weekday_followed_by_punctuation(self, parser, sentence, expected):
        result = await parser.parse(WEAK_SINGLE_BODY + " " + sentence, now=FIXED_NOW)

        assert result.success is True
        assert result.queries[0].deadline_at == expected

    @pytest.mark.asyncio
    async def test_plural_weekday_is_not_a_deadline(self, parser):
        result = await parser.parse(WEAK_SINGLE_BODY + " We publish by Fridays.", now=FIXED_NOW)

        assert result.success is True
        assert result.queries[0].deadline_at is None
        assert result.queries[0].is_hard_deadline is False

    @pytest.mark.asyncio
    async def test_passed_month_day_rolls_to_next_year(self, parser):
        body = WEAK_SINGLE_BODY + " We needed answers before November 3."
        query = (await parser.parse(body, now=FIXED_NOW)).queries[0]

        assert query.deadline_at == datetime(2026, 11, 3, 22, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_evidence_quotes_source(self, parser):
        query = (await parser.parse(SINGLE_BODY, now=FIXED_NOW)).queries[0]
        by_field = {item.field_name: item for item in query.evidence}

        assert {"outlet_name", "journalist_reply_alias", "headline", "deadline_at"} <= set(by_field)
        outlet = by_field["outlet_name"]
        assert SINGLE_BODY[outlet.start_char:outlet.end_char] == "Daily Mail"
        assert "Daily Mail" in outlet.excerpt

    @pytest.mark.asyncio
    async def test_unrecognised_body_fails(self, parser):
        result = await parser.parse(UNRECOGNISED_BODY, now=FIXED_NOW)

        assert result.success is False
        assert result.queries == []
        assert result.errors == ["No media request fields recognised"]

    @pytest.mark.asyncio
    async def test_weak_request_still_succeeds_above_floor(self, parser):
        result = await parser.parse(WEAK_SINGLE_BODY, now=FIXED_NOW)

        assert result.success is True
        assert result.parse_confidence == pytest.approx(0.35)
        assert result.queries[0].outlet_name == "Boston Globe"


class TestLlmFallback:
    """The LLM is optional and may only improve a weak result."""

    @pytest.mark.asyncio
    async def test_llm_not_called_without_request(self, settings):
        extractor = make_extractor(response="{}")
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        await parser.parse(WEAK_SINGLE_BODY, use_llm=False, now=FIXED_NOW)
        extractor.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_llm_not_called_for_confident_regex(self, settings):
        extractor = make_extractor(response="{}")
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        result = await parser.parse(SINGLE_BODY, use_llm=True, now=FIXED_NOW)

        extractor.extract.assert_not_called()
        assert result.parse_method == ParseMethod.REGEX

    @pytest.mark.asyncio
    async def test_more_confident_llm_result_wins(self, settings):
        payload = {
            "outlet": "The Boston Globe",
            "journalist_title": "metro reporter",
            "story_topic": "Funding for city parks",
            "expert_types": ["urban planners"],
            "questions": ["Who pays for park upkeep?"],
            "deadline_text": "Friday at noon",
            "deadline_at": "2025-11-21T12:00:00",
            "reply_email": None,
            "confidence": 0.92,
        }
        extractor = make_extractor(response="```json\n" + json.dumps(payload) + "\n```")
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        result = await parser.parse(WEAK_SINGLE_BODY, use_llm=True, now=FIXED_NOW)
        query = result.queries[0]

        extractor.extract.assert_awaited_once()
        assert result.parse_method == ParseMethod.LLM
        assert result.parse_confidence == pytest.approx(0.92)
        assert query.parse_method == ParseMethod.LLM
        assert query.outlet_name == "The Boston Globe"
        assert query.headline == "Funding for city parks"
        assert query.expert_roles == ["urban planners"]
        # Naive model timestamps are read as Eastern.
        assert query.deadline_at == datetime(2025, 11, 21, 17, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_less_confident_llm_result_is_ignored(self, settings):
        extractor = make_extractor(response=json.dumps({"outlet": "Somewhere", "confidence": 0.1}))
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        result = await parser.parse(WEAK_SINGLE_BODY, use_llm=True, now=FIXED_NOW)

        assert result.parse_method == ParseMethod.REGEX
        assert result.queries[0].outlet_name == "Boston Globe"

    @pytest.mark.asyncio
    async def test_llm_confidence_defaults_when_missing(self, settings):
        extractor = make_extractor(response=json.dumps({"outlet": "WBUR"}))
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        result = await parser.parse(WEAK_SINGLE_BODY, use_llm=True, now=FIXED_NOW)

        assert result.parse_method == ParseMethod.LLM
        assert result.parse_confidence == pytest.approx(0.9)
        assert result.queries[0].headline == "Media Query"

    @pytest.mark.parametrize("error", [
        LlmExtractionError("mock", "timed out after 20.0s"),
        RuntimeError("connection reset"),
    ])
    @pytest.mark.asyncio
    async def test_llm_failure_degrades_to_regex(self, settings, error):
        extractor = make_extractor(error=error)
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        result = await parser.parse(WEAK_SINGLE_BODY, use_llm=True, now=FIXED_NOW)

        assert result.success is True
        assert result.parse_method == ParseMethod.REGEX
        assert result.parse_confidence == pytest.approx(0.35)

    @pytest.mark.asyncio
    async def test_invalid_llm_json_degrades_to_regex(self, settings):
        extractor = make_extractor(response="not json at all")
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        result = await parser.parse(WEAK_SINGLE_BODY, use_llm=True, now=FIXED_NOW)
        assert result.parse_method == ParseMethod.REGEX

    @pytest.mark.asyncio
    async def test_llm_single_string_fields_kept_whole(self, settings):
        payload = {
            "expert_types": "dermatologists",
            "questions": "What works?",
            "deadline_at": "2025-11-21T18:00:00Z",
            "confidence": 0.95,
        }
        extractor = make_extractor(response=json.dumps(payload))
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        query = (await parser.parse(WEAK_SINGLE_BODY, use_llm=True, now=FIXED_NOW)).queries[0]

        assert query.expert_roles == ["dermatologists"]
        assert query.questions == ["What works?"]
        assert query.deadline_at == datetime(2025, 11, 21, 18, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_llm_non_list_fields_ignored(self, settings):
        payload = {"expert_types": 42, "questions": {"first": "What works?"}, "confidence": 0.95}
        extractor = make_extractor(response=json.dumps(payload))
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        query = (await parser.parse(WEAK_SINGLE_BODY, use_llm=True, now=FIXED_NOW)).queries[0]

        assert query.expert_roles == []
        assert query.questions == []

    @pytest.mark.asyncio
    async def test_llm_rescues_unrecognised_body(self, settings):
        extractor = make_extractor(response=json.dumps({"story_topic": "Remote work trends", "confidence": 0.85}))
        parser = SingleQueryParser(settings, llm_extractor=extractor)

        result = await parser.parse(UNRECOGNISED_BODY, use_llm=True, now=FIXED_NOW)

        assert result.success is True
        assert result.queries[0].headline == "Remote work trends"


class TestHelpers:

    def test_strip_code_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('{"a": 1}') == '{"a": 1}'

    @pytest.mark.parametrize("topic,expected", [
        ("rising grocery prices and the economy", "Business and Finance"),
        ("new medical research", "Health"),
        ("software layoffs", "Technology"),
        ("city parks", "General"),
    ])
    def test_infer_category(self, topic, expected):
        assert infer_category(topic, "") == expected

    def test_request_type_for_phone_call(self, settings):
        from pressroom.ingestion.single import infer_request_type
        assert infer_request_type("Can we hop on a call?") == RequestType.PHONE_INTERVIEW
