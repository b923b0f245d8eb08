"""Tests for the structured multi-query (SOS) parser."""

from datetime import datetime, timezone

import pytest

from pressroom.ingestion.models import ParseMethod, RequestType
from pressroom.ingestion.structured import (
    StructuredQueryParser,
    extract_expert_requirements,
    infer_request_type,
)

from email_samples import SOS_BLOCK_UPPER_CLASS, SOS_BODY, SOS_BODY_PARTIAL


class TestStructuredParsing:
    """Field extraction from well-formed blocks."""

    @pytest.fixture
    def parser(self, settings):
        return StructuredQueryParser(settings)

    def test_parses_every_block(self, parser):
        result = parser.parse(SOS_BODY)

        assert result.success is True
        assert result.errors == []
        assert len(result.queries) == 2
        assert result.parse_confidence == pytest.approx(0.95)
        assert result.parse_method == ParseMethod.REGEX

    def test_first_block_fields(self, parser):
        query = parser.parse(SOS_BODY).queries[0]

        assert query.query_index == 1
        assert query.headline == "Here's the Minimum Net Worth to Be Considered Upper Class by 2027"
        assert query.category == "Business and Finance"
        assert query.journalist_name == "Cindy Lamothe"
        assert query.journalist_email == "clamothe.garcia@gmail.com"
        assert query.journalist_profile_url == "https://muckrack.com/cindy-lamothe-1"
        assert query.outlet_name == "GOBankingRates"
        assert query.outlet_website == "https://www.gobankingrates.com"
        assert query.deadline_date == "2025-12-17"
        assert query.deadline_time == "12:00 pm"
        assert query.deadline_timezone == "Eastern Standard Time"
        assert query.is_hard_deadline is True
        assert query.request_type == RequestType.QUOTE
        assert query.parse_confidence == pytest.approx(0.95)

    def test_eastern_deadline_converted_to_utc(self, parser):
        """12:00 pm Eastern Standard Time on 2025-12-17 is 17:00 UTC."""
        query = parser.parse(SOS_BODY).queries[0]
        assert query.deadline_at == datetime(2025, 12, 17, 17, 0, tzinfo=timezone.utc)

    def test_pacific_deadline_crosses_midnight(self, parser):
        query = parser.parse(SOS_BODY).queries[1]
        assert query.deadline_at == datetime(2025, 12, 19, 1, 0, tzinfo=timezone.utc)

    def test_optional_fields_may_be_absent(self, parser):
        query = parser.parse(SOS_BODY).queries[1]

        assert query.journalist_profile_url is None
        assert query.outlet_website is None
        assert query.outlet_name == "Travel Weekly"

    def test_query_text_stops_at_separator(self, parser):
        query = parser.parse(SOS_BODY).queries[1]

        assert query.query_text.endswith("Quotes by email are fine.")
        assert "Unsubscribe" not in query.query_text
        assert "_____" not in query.query_text

    def test_questions_and_constraints(self, parser):
        query = parser.parse(SOS_BODY).queries[0]

        assert query.questions == [
            "What net worth is considered upper class?",
            "How will that change by 2027?",
        ]
        assert "US-based only" in query.expert_constraints
        assert query.expert_roles

    def test_evidence_spans_point_into_body(self, parser):
        query = parser.parse(SOS_BODY).queries[0]
        fields = {item.field_name for item in query.evidence}

        assert fields == {"headline", "journalist_email", "outlet_name", "deadline_at"}
        for item in query.evidence:
            assert SOS_BODY[item.start_char:item.end_char] == item.excerpt

    def test_headline_evidence_quotes_summary_line(self, parser):
        query = parser.parse(SOS_BODY).queries[0]
        headline = next(item for item in query.evidence if item.field_name == "headline")

        assert headline.excerpt.startswith("1) SUMMARY:")
        assert headline.field_value == query.headline
        assert headline.confidence == 1.0


class TestPartialFailure:
    """A malformed block must not take its neighbours down with it."""

    def test_three_good_one_malformed(self, settings):
        result = StructuredQueryParser(settings).parse(SOS_BODY_PARTIAL)

        assert result.success is True
        assert len(result.queries) == 3
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Query block 4 at position ")
        assert result.parse_confidence == pytest.approx(0.95 * 3 / 4)

    def test_error_position_is_block_offset(self, settings):
        result = StructuredQueryParser(settings).parse(SOS_BODY_PARTIAL)
        offset = SOS_BODY_PARTIAL.index("4) SUMMARY")

        assert f"at position {offset} " in result.errors[0]

    def test_empty_query_field_is_an_error(self, settings):
        body = SOS_BLOCK_UPPER_CLASS.split("QUERY:")[0] + "QUERY:\n_____\n"
        result = StructuredQueryParser(settings).parse(body)

        assert result.success is False
        assert result.queries == []
        assert "empty QUERY field" in result.errors[0]

    def test_no_blocks(self, settings):
        result = StructuredQueryParser(settings).parse("Nothing structured here.")

        assert result.success is False
        assert result.errors == ["No numbered SUMMARY blocks found"]
        assert result.parse_confidence == 0.0

    def test_unreadable_deadline_leaves_deadline_empty(self, settings):
        body = SOS_BLOCK_UPPER_CLASS.replace("DEADLINE TIME: 12:00 pm", "DEADLINE TIME: noon-ish")
        query = StructuredQueryParser(settings).parse(body).queries[0]

        assert query.deadline_at is None
        assert query.deadline_time == "noon-ish"


class TestRequestTypeInference:

    @pytest.mark.parametrize("text,expected", [
        ("Looking for a live virtual interview tonight", RequestType.LIVE_VIRTUAL),
        ("Available for a phone interview tomorrow?", RequestType.PHONE_INTERVIEW),
        ("Guests needed in-studio on Monday", RequestType.IN_STUDIO),
        ("Please email a response with your thoughts", RequestType.EMAILED_QA),
        ("Looking for a quote on tax changes", RequestType.QUOTE),
        ("Need background on the merger", RequestType.BACKGROUND),
        ("Seeking CFPs to weigh in", RequestType.QUOTE),
    ])
    def test_infer_request_type(self, text, expected):
        assert infer_request_type(text) == expected

    def test_live_requires_word_boundary(self):
        """'delivered' must not count as 'live'."""
        assert infer_request_type("Responses delivered via interview notes") == RequestType.QUOTE

    def test_constraints(self):
        _, constraints = extract_expert_requirements(
            "US-based experts only. Human-sourced answers. No SEO agencies, no travel bloggers."
        )
        assert constraints == [
            "US-based only",
            "Human-sourced quotes only (no AI)",
            "No travel bloggers",
            "No SEO specialists or influencers",
        ]
