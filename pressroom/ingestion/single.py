"""Parser for free-form single-query emails.

These are prose requests ("Hello, I am a consumer reporter at the Daily
Mail. We are looking into writing a story about...") with no field labels.
A deterministic pass runs first and scores itself by which extractors hit.
An optional LLM pass may replace that result when it is weak.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Protocol

import structlog
from dateutil import parser as date_parser

from ..config.ingestion import IngestionSettings, get_ingestion_settings
from ..exceptions import LlmExtractionError
from .deadlines import (
    MONTH_NAMES,
    TIMEZONE_TOKEN,
    WEEKDAY_NAMES,
    localize,
    next_month_day,
    next_time_of_day,
    next_weekday,
    utc_now,
)
from .evidence import context_evidence
from .matching import REPLY_ALIAS_PATTERN, extract_questions, has_term, unique
from .models import CandidateQuery, ExtractedEvidence, ParseMethod, ParserResult, RequestType

logger = structlog.get_logger(__name__)

OUTLET_WEIGHT = 0.2
SENT_FROM_WEIGHT = 0.15
REPLY_ALIAS_WEIGHT = 0.1
TOPIC_WEIGHT = 0.15
EXPERTS_WEIGHT = 0.15
QUESTIONS_WEIGHT = 0.1
DEADLINE_WEIGHT = 0.15

DEFAULT_HEADLINE = "Media Query"

_OUTLET = re.compile(
    r"(?:I am|I'm)\s+(?:an?\s+)?([a-z\s]+?(?:reporter|journalist|writer|editor|producer))\s+"
    r"(?:at|for|with)\s+(?:the\s+)?([A-Z][A-Za-z&'\s]+?)(?=\.|,|\s+We\b)",
    re.IGNORECASE,
)
_SENT_FROM = re.compile(r"Sent from:\s*([^/\r\n]+)", re.IGNORECASE)

_TOPIC_END = r"(?=\.(?:\s|$)|\s*We'd|\s*We would)"
_TOPIC_PATTERNS = [
    re.compile(r"(?:story|article|piece|report)\s+(?:about|on|regarding|concerning)\s+(.+?)" + _TOPIC_END,
               re.IGNORECASE | re.DOTALL),
    re.compile(r"looking into\s+(?:writing\s+)?(?:an?\s+)?(?:story\s+)?(?:about\s+)?(.+?)" + _TOPIC_END,
               re.IGNORECASE | re.DOTALL),
    re.compile(r"researching\s+(?:an?\s+)?(?:story\s+)?(?:about\s+)?(.+?)" + _TOPIC_END,
               re.IGNORECASE | re.DOTALL),
]

_EXPERT_PATTERNS = [
    re.compile(r"(?:seeking|looking for|want to speak with|love to hear from|hoping to hear from)\s+"
               r"(.+?)(?=\s+to\s+|\s+who\s+|\s+that\s+|\.(?:\s|$))", re.IGNORECASE | re.DOTALL),
    re.compile(r"(?:responses|comments|insights|quotes)\s+from\s+(.+?)(?=\s+to\s+|\.(?:\s|$))",
               re.IGNORECASE | re.DOTALL),
]
_EXPERT_SPLIT = re.compile(r"\s*,\s*(?:and\s+)?|\s+and\s+")
_MAX_EXPERT_LENGTH = 50

_WEEKDAY_NAMES = "|".join(WEEKDAY_NAMES)
_MONTH_NAMES = "|".join(MONTH_NAMES)

_CLOCK_TEXT = r"\d{1,2}(?::\d{2})?\s*[ap]\.?m\b\.?(?:\s*" + TIMEZONE_TOKEN + r")?"
_CLOCK_DEADLINE = re.compile(
    r"(?:\bby|\bas of|\bdeadline:?|hoping to have[^.]*?\bby)\s*(" + _CLOCK_TEXT + r")",
    re.IGNORECASE,
)
# The weekday must be a whole word ("Friday's", "Friday!"); the rest of the
# clause may carry a clock time.
_WEEKDAY_DEADLINE = re.compile(
    r"\b(?:by|before|no later than)\s+((" + _WEEKDAY_NAMES + r")\b[^.\r\n]*)",
    re.IGNORECASE,
)
_CLOCK_IN_CLAUSE = re.compile(_CLOCK_TEXT, re.IGNORECASE)
_MONTH_DAY_DEADLINE = re.compile(
    r"\b(?:by|before)\s+((?:" + _MONTH_NAMES + r")\s+\d{1,2})(?:st|nd|rd|th)?\b",
    re.IGNORECASE,
)
_TIMEZONE = re.compile(r"\b(" + TIMEZONE_TOKEN + r")", re.IGNORECASE)

_CATEGORY_RULES = [
    ("Business and Finance", re.compile(r"\b(?:financ|money|bank|econom)", re.IGNORECASE)),
    ("Health", re.compile(r"\b(?:health|medical|doctor)", re.IGNORECASE)),
    ("Technology", re.compile(r"\b(?:tech|software|ai\b|artificial intelligence)", re.IGNORECASE)),
    ("Travel", re.compile(r"\b(?:travel|vacation|hotel)", re.IGNORECASE)),
    ("Politics", re.compile(r"\b(?:politic|government|polic)", re.IGNORECASE)),
]
DEFAULT_CATEGORY = "General"

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

EXTRACTION_PROMPT = """Extract structured information from this media query email. Return ONLY valid JSON.

EMAIL:
{body}

Extract and return JSON with these fields:
{{
  "outlet": "name of the media outlet (e.g., Daily Mail, NBC News)",
  "journalist_title": "title of the journalist (e.g., consumer reporter, senior producer)",
  "story_topic": "what the story is about (one sentence)",
  "expert_types": ["array of expert types they are seeking"],
  "questions": ["array of specific questions they want answered"],
  "deadline_text": "the deadline as stated in the email",
  "deadline_at": "ISO 8601 datetime if you can parse it, else null",
  "reply_email": "the reply email address if present",
  "confidence": 0.0-1.0 confidence in extraction quality
}}

If a field cannot be determined, use null or empty array. Be precise and only extract what is explicitly stated."""


class Extractor(Protocol):
    """Anything that turns a prompt into raw model text."""

    name: str

    async def extract(self, prompt: str) -> str:
        ...


@dataclass
class SingleQueryFields:
    """Fields pulled out of a free-form request, by regex or by LLM."""

    outlet: Optional[str] = None
    journalist_title: Optional[str] = None
    story_topic: Optional[str] = None
    expert_types: List[str] = field(default_factory=list)
    questions: List[str] = field(default_factory=list)
    deadline_text: Optional[str] = None
    deadline_at: Optional[datetime] = None
    reply_email: Optional[str] = None


def _collapse(text: str) -> str:
    return " ".join(text.split())


def infer_category(topic: Optional[str], body_text: str) -> str:
    text = topic or body_text
    for category, pattern in _CATEGORY_RULES:
        if pattern.search(text):
            return category
    return DEFAULT_CATEGORY


def infer_request_type(body_text: str) -> RequestType:
    if has_term(body_text, "emailed response", "emailed comment"):
        return RequestType.EMAILED_QA
    if has_term(body_text, "phone", "call"):
        return RequestType.PHONE_INTERVIEW
    if has_term(body_text, "live") and has_term(body_text, "interview"):
        return RequestType.LIVE_VIRTUAL
    if has_term(body_text, "comment", "quote"):
        return RequestType.QUOTE
    return RequestType.EMAILED_QA


def strip_code_fence(raw: str) -> str:
    return _CODE_FENCE.sub("", raw.strip()).strip()


class SingleQueryParser:
    """Deterministic extraction with an optional LLM second opinion."""

    def __init__(self, settings: Optional[IngestionSettings] = None, llm_extractor: Optional[Extractor] = None):
        self.settings = settings or get_ingestion_settings()
        self.llm_extractor = llm_extractor

    @property
    def llm_configured(self) -> bool:
        return self.llm_extractor is not None

    async def parse(self, body_text: str, use_llm: bool = False, now: Optional[datetime] = None) -> ParserResult:
        """Parse one request; the LLM result is used only when it is more confident."""
        now = now or utc_now()
        body_text = body_text or ""

        fields, confidence = self.extract_fields(body_text, now)
        method = ParseMethod.REGEX

        if use_llm and self.llm_configured and confidence < self.settings.llm_confidence_threshold:
            try:
                llm_fields, llm_confidence = await self._extract_with_llm(body_text)
            except Exception as exc:
                logger.warning("LLM extraction failed, using regex result",
                               provider=getattr(self.llm_extractor, "name", "unknown"),
                               error=str(exc))
            else:
                if llm_confidence > confidence:
                    fields, confidence, method = llm_fields, llm_confidence, ParseMethod.LLM
                else:
                    logger.info("LLM extraction not more confident than regex",
                                llm_confidence=llm_confidence,
                                regex_confidence=round(confidence, 4))

        success = method == ParseMethod.LLM or confidence >= self.settings.single_success_floor \
            or fields.outlet is not None
        if not success:
            logger.info("Single query not recognised", parse_confidence=round(confidence, 4))
            return ParserResult(
                success=False,
                errors=["No media request fields recognised"],
                parse_confidence=confidence,
                parse_method=method,
            )

        query = self._to_candidate(fields, body_text, confidence, method)
        logger.info("Single query parsed",
                    parse_method=method.value,
                    parse_confidence=round(confidence, 4),
                    outlet=fields.outlet)
        return ParserResult(
            success=True,
            queries=[query],
            parse_confidence=confidence,
            parse_method=method,
        )

    def extract_fields(self, body_text: str, now: datetime):
        """Deterministic pass; returns (fields, confidence capped at 1.0)."""
        fields = SingleQueryFields()
        confidence = 0.0

        outlet_match = _OUTLET.search(body_text)
        if outlet_match:
            fields.journalist_title = _collapse(outlet_match.group(1))
            fields.outlet = _collapse(outlet_match.group(2))
            confidence += OUTLET_WEIGHT

        if fields.outlet is None:
            sent_from = _SENT_FROM.search(body_text)
            if sent_from and sent_from.group(1).strip():
                fields.outlet = sent_from.group(1).strip()
                confidence += SENT_FROM_WEIGHT

        alias = REPLY_ALIAS_PATTERN.search(body_text)
        if alias:
            fields.reply_email = alias.group(0)
            confidence += REPLY_ALIAS_WEIGHT

        for pattern in _TOPIC_PATTERNS:
            topic = pattern.search(body_text)
            if topic:
                fields.story_topic = _collapse(topic.group(1))
                confidence += TOPIC_WEIGHT
                break

        experts = []
        for pattern in _EXPERT_PATTERNS:
            for match in pattern.finditer(body_text):
                for expert in _EXPERT_SPLIT.split(_collapse(match.group(1))):
                    if 0 < len(expert.strip()) < _MAX_EXPERT_LENGTH:
                        experts.append(expert)
        fields.expert_types = unique(experts)
        if fields.expert_types:
            confidence += EXPERTS_WEIGHT

        fields.questions = extract_questions(body_text, min_length=10)
        if fields.questions:
            confidence += QUESTIONS_WEIGHT

        deadline_text, deadline_at = self._extract_deadline(body_text, now)
        if deadline_text:
            fields.deadline_text = deadline_text
            fields.deadline_at = deadline_at
            confidence += DEADLINE_WEIGHT

        return fields, min(confidence, 1.0)

    def _extract_deadline(self, body_text: str, now: datetime):
        """First deadline phrase found, with a best-effort UTC conversion."""
        match = _CLOCK_DEADLINE.search(body_text)
        if match:
            text = match.group(1).strip()
            return text, next_time_of_day(text, self._timezone_in(text), now)

        match = _WEEKDAY_DEADLINE.search(body_text)
        if match:
            text = match.group(1).strip()
            # Only the weekday and its clock time; other numbers in the clause are not dates.
            when = match.group(2)
            clock = _CLOCK_IN_CLAUSE.search(text)
            if clock:
                when = f"{when} {clock.group(0)}"
            return text, next_weekday(when, self._timezone_in(text), now)

        match = _MONTH_DAY_DEADLINE.search(body_text)
        if match:
            text = match.group(1).strip()
            return text, next_month_day(text, self.settings.default_timezone, now)

        return None, None

    def _timezone_in(self, text: str) -> str:
        found = _TIMEZONE.search(text)
        return found.group(1) if found else self.settings.default_timezone

    async def _extract_with_llm(self, body_text: str):
        raw = await self.llm_extractor.extract(EXTRACTION_PROMPT.format(body=body_text))
        data = json.loads(strip_code_fence(raw))
        if not isinstance(data, dict):
            raise LlmExtractionError(getattr(self.llm_extractor, "name", "unknown"), "response is not a JSON object")

        fields = SingleQueryFields(
            outlet=_text_or_none(data.get("outlet")),
            journalist_title=_text_or_none(data.get("journalist_title")),
            story_topic=_text_or_none(data.get("story_topic")),
            expert_types=unique(str(item) for item in _as_list(data.get("expert_types"))),
            questions=unique(str(item) for item in _as_list(data.get("questions"))),
            deadline_text=_text_or_none(data.get("deadline_text")),
            deadline_at=self._parse_llm_datetime(data.get("deadline_at")),
            reply_email=_text_or_none(data.get("reply_email")),
        )

        confidence = data.get("confidence")
        if confidence is None:
            confidence = self.settings.llm_default_confidence
        return fields, max(0.0, min(float(confidence), 1.0))

    def _parse_llm_datetime(self, value: Any) -> Optional[datetime]:
        """ISO 8601 from the model; naive values are read in the default timezone."""
        if not value or not isinstance(value, str):
            return None
        try:
            parsed = date_parser.isoparse(value.strip())
        except ValueError:
            logger.info("Ignoring unparseable LLM deadline", deadline_at=value)
            return None
        return localize(parsed, self.settings.default_timezone)

    def _to_candidate(
        self, fields: SingleQueryFields, body_text: str, confidence: float, method: ParseMethod
    ) -> CandidateQuery:
        evidence: List[ExtractedEvidence] = []
        for field_name, target, value in (
            ("outlet_name", fields.outlet, fields.outlet),
            ("journalist_reply_alias", fields.reply_email, fields.reply_email),
            ("headline", fields.story_topic, fields.story_topic),
            ("deadline_at", fields.deadline_text,
             fields.deadline_at.isoformat() if fields.deadline_at else None),
        ):
            if target:
                evidence.append(context_evidence(field_name, value, body_text, target, confidence))

        return CandidateQuery(
            query_index=0,
            parse_confidence=confidence,
            parse_method=method,
            headline=fields.story_topic or DEFAULT_HEADLINE,
            summary=body_text[:self.settings.summary_length],
            category=infer_category(fields.story_topic, body_text),
            request_type=infer_request_type(body_text),
            query_text=body_text,
            expert_roles=list(fields.expert_types),
            questions=list(fields.questions),
            deadline_at=fields.deadline_at,
            is_hard_deadline=fields.deadline_text is not None,
            journalist_title=fields.journalist_title,
            journalist_reply_alias=fields.reply_email,
            outlet_name=fields.outlet,
            evidence=evidence,
        )


def _text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _as_list(value: Any) -> List[Any]:
    """A lone string from the model is one item; anything else that is not a list is dropped."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [item for item in value if item is not None]
    return []
