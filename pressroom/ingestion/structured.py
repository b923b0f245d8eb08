"""Parser for structured multi-query emails (Source of Sources).

Each email carries numbered blocks with one labeled field per line::

    1) SUMMARY: Here's the Minimum Net Worth to Be Considered Upper Class by 2027
    CATEGORY: Business and Finance
    NAME: Cindy Lamothe
    EMAIL: clamothe.garcia@gmail.com
    MUCK RACK URL: https://muckrack.com/cindy-lamothe-1
    MEDIA OUTLET: GOBankingRates
    MEDIA WEBSITE: https://www.gobankingrates.com
    DEADLINE DATE: 2025-12-17
    DEADLINE TIME: 12:00 pm
    TIME ZONE: Eastern Standard Time
    QUERY: SEEKING QUALIFIED CFPs AND FINANCE EXPERTS ONLY...
    _____

Blocks are located first and matched one at a time, so a malformed block
becomes a row-level error without affecting its neighbours.
"""

import re
from typing import List, Optional, Tuple

import structlog

from ..config.ingestion import IngestionSettings, get_ingestion_settings
from .deadlines import resolve_structured_deadline
from .evidence import span_evidence
from .matching import collect_groups, extract_questions, has_term
from .models import CandidateQuery, ExtractedEvidence, ParseMethod, ParserResult, RequestType

logger = structlog.get_logger(__name__)

_BLOCK_START = re.compile(r"^[ \t]*(\d+)\)[ \t]*SUMMARY:", re.IGNORECASE | re.MULTILINE)

_BLOCK = re.compile(
    r"(?P<index>\d+)\)[ \t]*SUMMARY:[ \t]*(?P<summary>[^\r\n]+)[\r\n]+"
    r"[ \t]*CATEGORY:[ \t]*(?P<category>[^\r\n]+)[\r\n]+"
    r"[ \t]*NAME:[ \t]*(?P<name>[^\r\n]+)[\r\n]+"
    r"[ \t]*EMAIL:[ \t]*(?P<email>[^\r\n]+)[\r\n]+"
    r"(?:[ \t]*MUCK RACK URL:[ \t]*(?P<profile_url>[^\r\n]*)[\r\n]+)?"
    r"[ \t]*MEDIA OUTLET:[ \t]*(?P<outlet>[^\r\n]+)[\r\n]+"
    r"(?:[ \t]*MEDIA WEBSITE:[ \t]*(?P<website>[^\r\n]*)[\r\n]+)?"
    r"[ \t]*DEADLINE DATE:[ \t]*(?P<deadline_date>[^\r\n]+)[\r\n]+"
    r"[ \t]*DEADLINE TIME:[ \t]*(?P<deadline_time>[^\r\n]+)[\r\n]+"
    r"[ \t]*TIME ZONE:[ \t]*(?P<timezone>[^\r\n]+)[\r\n]+"
    r"[ \t]*QUERY:[ \t]*(?P<query>.*)",
    re.IGNORECASE | re.DOTALL,
)

# Separator lines and footers end the free-text QUERY field.
_QUERY_TERMINATOR = re.compile(r"_{3,}|Source of Sources|Unsubscribe", re.IGNORECASE)

_ROLE_PATTERNS = [
    re.compile(r"seeking\s+(?:qualified\s+)?([A-Z]+s?(?:\s+and\s+[A-Z\s]+?)?)\s+(?:only|to)\b", re.IGNORECASE),
    re.compile(r"looking for\s+(?:an?\s+)?([a-z\s]+?(?:expert|professional|specialist|analyst)s?)\b", re.IGNORECASE),
    re.compile(r"speak with\s+(?:an?\s+)?([a-z][a-z\s]*?)(?=[.,;:!?\r\n]|\s+(?:who|to|about)\b|$)", re.IGNORECASE),
]

_CONSTRAINTS = [
    (re.compile(r"us-based", re.IGNORECASE), "US-based only"),
    (re.compile(r"human-sourced", re.IGNORECASE), "Human-sourced quotes only (no AI)"),
    (re.compile(r"no\s+(?:travel\s+)?bloggers", re.IGNORECASE), "No travel bloggers"),
    (re.compile(r"no\s+(?:seo|influencers)", re.IGNORECASE), "No SEO specialists or influencers"),
    (re.compile(r"detailed.*quotes", re.IGNORECASE | re.DOTALL), "Include detailed/lengthy quotes"),
]


def infer_request_type(query_text: str) -> RequestType:
    """First matching rule wins; most structured queries want a quote."""
    if has_term(query_text, "live") and has_term(query_text, "interview", "virtual"):
        return RequestType.LIVE_VIRTUAL
    if has_term(query_text, "phone") and has_term(query_text, "interview"):
        return RequestType.PHONE_INTERVIEW
    if has_term(query_text, "studio", "in-person"):
        return RequestType.IN_STUDIO
    if has_term(query_text, "email") and has_term(query_text, "response", "comment"):
        return RequestType.EMAILED_QA
    if has_term(query_text, "quote", "comment"):
        return RequestType.QUOTE
    if has_term(query_text, "background", "off the record"):
        return RequestType.BACKGROUND
    return RequestType.QUOTE


def extract_expert_requirements(query_text: str) -> Tuple[List[str], List[str]]:
    """Expert roles and sourcing constraints stated in the query."""
    roles = collect_groups(_ROLE_PATTERNS, query_text)
    constraints = [label for pattern, label in _CONSTRAINTS if pattern.search(query_text)]
    return roles, constraints


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class StructuredQueryParser:
    """Regex parser for numbered, labeled query blocks."""

    def __init__(self, settings: Optional[IngestionSettings] = None):
        self.settings = settings or get_ingestion_settings()

    def split_blocks(self, body_text: str) -> List[Tuple[int, str]]:
        """(offset, text) of each block, from its number to the next block start."""
        starts = [match.start(1) for match in _BLOCK_START.finditer(body_text)]
        bounds = starts[1:] + [len(body_text)]
        return [(start, body_text[start:end]) for start, end in zip(starts, bounds)]

    def parse(self, body_text: str) -> ParserResult:
        """Parse every block; unmatched blocks become row-level errors."""
        blocks = self.split_blocks(body_text or "")
        queries: List[CandidateQuery] = []
        errors: List[str] = []

        for position, (offset, block) in enumerate(blocks, start=1):
            match = _BLOCK.match(block)
            if not match:
                errors.append(
                    f"Query block {position} at position {offset} does not match the expected field layout"
                )
                continue

            query = self._build_query(match, offset)
            if query is None:
                errors.append(f"Query block {position} at position {offset} has an empty QUERY field")
                continue
            queries.append(query)

        if not blocks:
            errors.append("No numbered SUMMARY blocks found")

        ratio = len(queries) / len(blocks) if blocks else 0.0
        result = ParserResult(
            success=len(queries) > 0,
            queries=queries,
            errors=errors,
            parse_confidence=self.settings.structured_confidence * ratio,
            parse_method=ParseMethod.REGEX,
        )

        logger.info("Structured email parsed",
                    blocks=len(blocks),
                    queries=len(queries),
                    errors=len(errors),
                    parse_confidence=round(result.parse_confidence, 4))
        return result

    def _build_query(self, match: re.Match, offset: int) -> Optional[CandidateQuery]:
        query_text = _QUERY_TERMINATOR.split(match.group("query"), maxsplit=1)[0].strip()
        if not query_text:
            return None

        summary = match.group("summary").strip()
        email = match.group("email").strip()
        outlet = match.group("outlet").strip()
        deadline_date = match.group("deadline_date").strip()
        deadline_time = match.group("deadline_time").strip()
        timezone_name = match.group("timezone").strip()

        deadline_at = resolve_structured_deadline(deadline_date, deadline_time, timezone_name)
        roles, constraints = extract_expert_requirements(query_text)

        evidence = [
            self._line_evidence(match, offset, "summary", "headline", summary),
            self._line_evidence(match, offset, "email", "journalist_email", email),
            self._line_evidence(match, offset, "outlet", "outlet_name", outlet),
            self._deadline_evidence(match, offset, deadline_at.isoformat() if deadline_at else None),
        ]

        return CandidateQuery(
            query_index=int(match.group("index")),
            parse_confidence=self.settings.structured_confidence,
            parse_method=ParseMethod.REGEX,
            headline=summary,
            summary=query_text[:self.settings.summary_length],
            category=match.group("category").strip(),
            request_type=infer_request_type(query_text),
            query_text=query_text,
            expert_roles=roles,
            expert_constraints=constraints,
            questions=extract_questions(query_text),
            deadline_date=deadline_date,
            deadline_time=deadline_time,
            deadline_timezone=timezone_name,
            deadline_at=deadline_at,
            is_hard_deadline=True,
            journalist_name=match.group("name").strip(),
            journalist_email=email,
            journalist_profile_url=_clean(match.group("profile_url")),
            outlet_name=outlet,
            outlet_website=_clean(match.group("website")),
            evidence=evidence,
        )

    @staticmethod
    def _line_evidence(
        match: re.Match, offset: int, group: str, field_name: str, value: str
    ) -> ExtractedEvidence:
        """Evidence covering the labeled line, e.g. 'EMAIL: someone@example.com'."""
        block = match.string
        line_start = block.rfind("\n", 0, match.start(group)) + 1
        excerpt = block[line_start:match.end(group)]
        stripped = excerpt.lstrip()
        line_start += len(excerpt) - len(stripped)
        return span_evidence(field_name, value, stripped.rstrip(), 1.0, offset + line_start)

    @staticmethod
    def _deadline_evidence(match: re.Match, offset: int, value: Optional[str]) -> ExtractedEvidence:
        block = match.string
        line_start = block.rfind("\n", 0, match.start("deadline_date")) + 1
        excerpt = block[line_start:match.end("timezone")]
        stripped = excerpt.lstrip()
        line_start += len(excerpt) - len(stripped)
        return span_evidence("deadline_at", value, stripped.rstrip(), 1.0, offset + line_start)
