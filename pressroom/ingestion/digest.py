"""Parser for digest emails carrying several newsroom requests (TMX Messenger).

Example body::

    Messages below from newsrooms.

    Health
    1. Mental Health Expert Needed for Live Interview
    Synopsis: The newsroom seeks a licensed mental health professional...
    Sent from: NBC NEWS / reply to journalist, email: send+47440.21535@tmxmessenger.com

    News
    2. Contact Needed for Oregon Student Survey Story
    Synopsis: A contact is needed for Chuck Gonzales...
    Sent from: Newsmax / reply to journalist, email: send+47048.21532@tmxmessenger.com

The body is scanned line by line. Category header lines set the category of
the items that follow; an item is complete once both its synopsis and its
"Sent from" line have been seen.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

import structlog

from ..config.ingestion import IngestionSettings, get_ingestion_settings
from .deadlines import TIMEZONE_TOKEN, is_month_name, next_month_day, next_time_of_day, utc_now
from .evidence import context_evidence, span_evidence
from .matching import collect_groups, has_term
from .models import CandidateQuery, ExtractedEvidence, ParseMethod, ParserResult, RequestType

logger = structlog.get_logger(__name__)

CATEGORIES = [
    "Health", "News", "Business", "Entertainment", "Technology", "Finance",
    "Lifestyle", "Sports", "Politics", "Science", "Travel", "Other",
]
DEFAULT_CATEGORY = "General"
_CATEGORY_LOOKUP = {name.lower(): name for name in CATEGORIES}

_ITEM_START = re.compile(r"^\s*(\d+)\.\s+(\S.*?)\s*$")
_SYNOPSIS = re.compile(r"^\s*Synopsis:\s*(.*?)\s*$", re.IGNORECASE)
_SENT_FROM = re.compile(
    r"^\s*Sent from:\s*(.+?)\s*/\s*reply to journalist,?\s*email:\s*(\S+@tmxmessenger\.com)",
    re.IGNORECASE,
)

_BROADCAST = re.compile(
    r"(?:on\s+)?\b(\w+day),?\s+([a-z]+\.?)\s+(\d{1,2})(?:st|nd|rd|th)?\s+at\s+"
    r"(\d{1,2})(?::(\d{2}))?\s*([ap]\.?m\.?)?(?:\s*(" + TIMEZONE_TOKEN + r"))?",
    re.IGNORECASE,
)
_DURATION = re.compile(r"approximately\s+(\d+)\s*(?:minute|min)|\b(\d+)-minute", re.IGNORECASE)
_DEADLINE = re.compile(
    r"\b(?:by|as of|deadline:?)\s*(\d{1,2})(?::(\d{2}))?\s*([ap]\.?m\.?)?(?:\s*(" + TIMEZONE_TOKEN + r"))?",
    re.IGNORECASE,
)

_ROLE_PATTERNS = [
    re.compile(
        r"(?:seeking|looking for|need)\s+(?:an?\s+)?([a-z\s]+?(?:expert|professional|specialist|analyst"
        r"|doctor|therapist|attorney|consultant)s?)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:mental health|licensed|certified)\s+((?:[a-z]+\s+){0,2}?(?:[a-z]+ist|professional|expert"
        r"|specialist|counselor|therapist|doctor|attorney|planner|accountant)s?)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b([a-z]+ist)s?\s+(?:to|for|regarding)\b", re.IGNORECASE),
]


@dataclass
class _DigestItem:
    index: int
    title: str
    title_line: str
    offset: int
    category: str
    synopsis: List[str] = field(default_factory=list)
    has_synopsis: bool = False


def infer_request_type(synopsis: str) -> RequestType:
    """Map a synopsis to the kind of response the newsroom wants."""
    if has_term(synopsis, "live") and has_term(synopsis, "interview", "virtual"):
        return RequestType.LIVE_VIRTUAL
    if has_term(synopsis, "phone", "call"):
        return RequestType.PHONE_INTERVIEW
    if has_term(synopsis, "contact", "seeking", "looking for"):
        return RequestType.CONTACT_REQUEST
    if has_term(synopsis, "interview", "speak with"):
        return RequestType.PHONE_INTERVIEW
    if has_term(synopsis, "question", "comment", "insight"):
        return RequestType.EMAILED_QA
    return RequestType.OTHER


def extract_expert_roles(synopsis: str) -> List[str]:
    return collect_groups(_ROLE_PATTERNS, synopsis)


class DigestQueryParser:
    """Line scanner for category-grouped digest emails."""

    def __init__(self, settings: Optional[IngestionSettings] = None):
        self.settings = settings or get_ingestion_settings()

    def parse(self, body_text: str, now: Optional[datetime] = None) -> ParserResult:
        """Parse all complete items; incomplete ones become row-level errors."""
        now = now or utc_now()
        body_text = body_text or ""
        queries: List[CandidateQuery] = []
        errors: List[str] = []
        attempted = 0

        category = DEFAULT_CATEGORY
        current: Optional[_DigestItem] = None
        offset = 0

        for line in body_text.splitlines(keepends=True):
            line_offset = offset
            offset += len(line)
            text = line.rstrip("\r\n")

            item_match = _ITEM_START.match(text)
            header = _CATEGORY_LOOKUP.get(text.strip().lower())

            if item_match:
                if current is not None:
                    errors.append(self._incomplete(current))
                attempted += 1
                current = _DigestItem(
                    index=int(item_match.group(1)),
                    title=item_match.group(2),
                    title_line=text.strip(),
                    offset=line_offset + (len(text) - len(text.lstrip())),
                    category=category,
                )
                continue

            if header:
                if current is not None:
                    errors.append(self._incomplete(current))
                    current = None
                category = header
                continue

            if current is None:
                continue

            synopsis_match = _SYNOPSIS.match(text)
            if synopsis_match:
                current.has_synopsis = True
                current.synopsis = [synopsis_match.group(1)] if synopsis_match.group(1) else []
                continue

            sent_match = _SENT_FROM.match(text)
            if sent_match:
                if not current.has_synopsis or not current.synopsis:
                    errors.append(self._incomplete(current))
                else:
                    sent_line = text.strip()
                    sent_offset = line_offset + (len(text) - len(text.lstrip()))
                    queries.append(
                        self._build_query(current, sent_match, sent_line, sent_offset, body_text, now)
                    )
                current = None
                continue

            if current.has_synopsis and text.strip():
                current.synopsis.append(text.strip())

        if current is not None:
            errors.append(self._incomplete(current))

        if attempted == 0:
            errors.append("No numbered digest items found")

        ratio = len(queries) / attempted if attempted else 0.0
        result = ParserResult(
            success=len(queries) > 0,
            queries=queries,
            errors=errors,
            parse_confidence=self.settings.digest_confidence * ratio,
            parse_method=ParseMethod.REGEX,
        )

        logger.info("Digest email parsed",
                    items=attempted,
                    queries=len(queries),
                    errors=len(errors),
                    parse_confidence=round(result.parse_confidence, 4))
        return result

    @staticmethod
    def _incomplete(item: _DigestItem) -> str:
        missing = "Synopsis" if not item.synopsis else "Sent from"
        return f"Digest item {item.index} at position {item.offset} is missing its {missing} line"

    def _build_query(
        self,
        item: _DigestItem,
        sent_match: re.Match,
        sent_line: str,
        sent_offset: int,
        body_text: str,
        now: datetime,
    ) -> CandidateQuery:
        synopsis = " ".join(item.synopsis)
        outlet = sent_match.group(1).strip()
        reply_alias = sent_match.group(2).strip()
        request_type = infer_request_type(synopsis)
        confidence = self.settings.digest_confidence

        evidence: List[ExtractedEvidence] = [
            span_evidence("headline", item.title, item.title_line, 1.0, item.offset),
            span_evidence("outlet_name", outlet, sent_line, 1.0, sent_offset),
            span_evidence("journalist_reply_alias", reply_alias, sent_line, 1.0, sent_offset),
        ]

        broadcast_at, broadcast_text = self._broadcast_schedule(synopsis, now)
        duration = self._duration(synopsis)
        deadline_at, deadline_text = (None, None)
        if broadcast_at is None:
            deadline_at, deadline_text = self._deadline(synopsis, now)

        if broadcast_at is not None:
            evidence.append(context_evidence(
                "broadcast_scheduled_at", broadcast_at.isoformat(), body_text, broadcast_text, confidence
            ))
        if deadline_at is not None:
            evidence.append(context_evidence(
                "deadline_at", deadline_at.isoformat(), body_text, deadline_text, confidence
            ))

        return CandidateQuery(
            query_index=item.index,
            parse_confidence=confidence,
            parse_method=ParseMethod.REGEX,
            headline=item.title,
            summary=synopsis[:self.settings.summary_length],
            category=item.category,
            request_type=request_type,
            query_text=synopsis,
            expert_roles=extract_expert_roles(synopsis),
            deadline_at=deadline_at,
            is_hard_deadline=False,
            broadcast_scheduled_at=broadcast_at,
            broadcast_duration_minutes=duration,
            broadcast_format=RequestType.LIVE_VIRTUAL.value if request_type == RequestType.LIVE_VIRTUAL else None,
            journalist_reply_alias=reply_alias,
            outlet_name=outlet,
            evidence=evidence,
        )

    def _broadcast_schedule(self, synopsis: str, now: datetime) -> Tuple[Optional[datetime], Optional[str]]:
        """'Saturday, November 29 at 6 pm' -> next such date in UTC."""
        for match in _BROADCAST.finditer(synopsis):
            if not is_month_name(match.group(2)):
                continue
            tz_name = match.group(7) or self.settings.default_timezone
            text = match.group(0).strip()
            scheduled = next_month_day(text, tz_name, now)
            if scheduled is not None:
                return scheduled, text
        return None, None

    @staticmethod
    def _duration(synopsis: str) -> Optional[int]:
        match = _DURATION.search(synopsis)
        if not match:
            return None
        return int(match.group(1) or match.group(2))

    def _deadline(self, synopsis: str, now: datetime) -> Tuple[Optional[datetime], Optional[str]]:
        """'by 3 PM EST' -> that time today, or tomorrow once it has passed."""
        for match in _DEADLINE.finditer(synopsis):
            # A bare number ("by 2027") is not a clock time.
            if not match.group(2) and not match.group(3):
                continue
            text = match.group(0).strip()
            tz_name = match.group(4) or self.settings.default_timezone
            deadline = next_time_of_day(text, tz_name, now)
            if deadline is not None:
                return deadline, text
        return None, None
