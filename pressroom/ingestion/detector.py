"""Classification of inbound emails by the media-query service that sent them."""

import re
from typing import Dict, List

import structlog

from .models import SourceDetectionResult, SourceType

logger = structlog.get_logger(__name__)

STRUCTURED_THRESHOLD = 5
DIGEST_THRESHOLD = 4
SINGLE_FALLBACK_CONFIDENCE = 0.7

_STRUCTURED_BLOCK = re.compile(r"\d+\)\s*summary:", re.IGNORECASE)
_STRUCTURED_CATEGORY = re.compile(r"category:\s*\S", re.IGNORECASE)
_STRUCTURED_DEADLINE_DATE = re.compile(r"deadline date:\s*\d{4}-\d{2}-\d{2}", re.IGNORECASE)
_STRUCTURED_DEADLINE_TIME = re.compile(r"deadline time:\s*\S", re.IGNORECASE)
_STRUCTURED_MUCK_RACK = re.compile(r"muck rack url:", re.IGNORECASE)
_STRUCTURED_OUTLET = re.compile(r"media outlet:\s*\S", re.IGNORECASE)
_STRUCTURED_QUERY = re.compile(r"query:\s*\S", re.IGNORECASE)

_DIGEST_SYNOPSIS = re.compile(r"synopsis:", re.IGNORECASE)
_DIGEST_SENT_FROM = re.compile(r"sent from:\s*\S", re.IGNORECASE)
_REPLY_ALIAS = re.compile(r"send\+\d+\.\d+@tmxmessenger\.com", re.IGNORECASE)
_NUMBERED_ITEM = re.compile(r"^\s*\d+\.\s+\S.*$", re.MULTILINE)

_DESCRIPTIONS = {
    SourceType.SOS: "Source of Sources - Structured media query service",
    SourceType.TMX_DIGEST: "TMX Messenger - Multiple newsroom requests in one email",
    SourceType.TMX_SINGLE: "TMX Messenger - Single newsroom request",
    SourceType.OTHER: "Unknown source - requires manual parsing",
}


def _structured_indicators(subject: str, body: str, sender: str) -> Dict[str, bool]:
    return {
        "subjectTag": "[sos]" in subject,
        "fromShankman": "shankman" in sender or "sourceofsources" in sender,
        "hasStructuredBlocks": bool(_STRUCTURED_BLOCK.search(body)),
        "hasCategory": bool(_STRUCTURED_CATEGORY.search(body)),
        "hasDeadlineDate": bool(_STRUCTURED_DEADLINE_DATE.search(body)),
        "hasDeadlineTime": bool(_STRUCTURED_DEADLINE_TIME.search(body)),
        "hasMuckRack": bool(_STRUCTURED_MUCK_RACK.search(body)),
        "hasMediaOutlet": bool(_STRUCTURED_OUTLET.search(body)),
        "hasQuery": bool(_STRUCTURED_QUERY.search(body)),
    }


def _digest_indicators(subject: str, body: str, sender: str) -> Dict[str, bool]:
    return {
        "subjectTMX": "tmx" in subject,
        "subjectNewsroom": "newsroom" in subject or "messages" in subject,
        "fromTMX": "tmx" in sender,
        "hasSynopsis": bool(_DIGEST_SYNOPSIS.search(body)),
        "hasSentFrom": bool(_DIGEST_SENT_FROM.search(body)),
        "hasTmxReplyEmail": bool(_REPLY_ALIAS.search(body)),
        "hasNumberedItems": bool(_NUMBERED_ITEM.search(body)),
        "multipleItems": len(_DIGEST_SYNOPSIS.findall(body)) > 1,
    }


def _matched(prefix: str, indicators: Dict[str, bool]) -> List[str]:
    return [f"{prefix}:{name}" for name, hit in indicators.items() if hit]


def detect_email_source(subject: str, body_text: str, from_address: str) -> SourceDetectionResult:
    """Classify an email as structured, digest, single-query or unknown.

    Structured indicators are scored first; the digest family is only
    considered when the structured score stays below its threshold. A
    digest needs more than one ``Synopsis:`` label or more than one
    numbered item, otherwise the email is treated as a single query.
    Deterministic for identical input.
    """
    subject_lower = (subject or "").lower()
    sender_lower = (from_address or "").lower()
    body = body_text or ""

    structured = _structured_indicators(subject_lower, body, sender_lower)
    structured_score = sum(structured.values())
    if structured_score >= STRUCTURED_THRESHOLD:
        return SourceDetectionResult(
            source_type=SourceType.SOS,
            confidence=min(structured_score / len(structured), 1.0),
            indicators=_matched("SOS", structured),
        )

    digest = _digest_indicators(subject_lower, body, sender_lower)
    digest_score = sum(digest.values())
    if digest_score >= DIGEST_THRESHOLD:
        numbered_items = len(_NUMBERED_ITEM.findall(body))
        is_digest = digest["multipleItems"] or numbered_items > 1
        return SourceDetectionResult(
            source_type=SourceType.TMX_DIGEST if is_digest else SourceType.TMX_SINGLE,
            confidence=min(digest_score / len(digest), 1.0),
            indicators=_matched("TMX", digest),
        )

    if digest["fromTMX"] or digest["hasTmxReplyEmail"]:
        fallback = {name: digest[name] for name in ("fromTMX", "hasTmxReplyEmail")}
        return SourceDetectionResult(
            source_type=SourceType.TMX_SINGLE,
            confidence=SINGLE_FALLBACK_CONFIDENCE,
            indicators=_matched("TMX", fallback),
        )

    return SourceDetectionResult(
        source_type=SourceType.OTHER,
        confidence=1.0,
        indicators=["NO_MATCH"],
    )


def describe_source_type(source_type: SourceType) -> str:
    """Human-readable name of a source type."""
    return _DESCRIPTIONS[SourceType(source_type)]
