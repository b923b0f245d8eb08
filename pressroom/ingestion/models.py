"""Data models for the media-query ingestion pipeline."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceType(str, Enum):
    """Third-party email formats the pipeline understands."""
    SOS = "SOS"
    TMX_DIGEST = "TMX_DIGEST"
    TMX_SINGLE = "TMX_SINGLE"
    OTHER = "OTHER"


class JobStatus(str, Enum):
    """Ingestion job lifecycle."""
    RECEIVED = "received"
    PARSING = "parsing"
    COMPLETED = "completed"
    NEEDS_REVIEW = "needs_review"
    FAILED = "failed"


class RequestType(str, Enum):
    """How the journalist wants the expert to respond."""
    QUOTE = "QUOTE"
    EMAILED_QA = "EMAILED_QA"
    PHONE_INTERVIEW = "PHONE_INTERVIEW"
    LIVE_VIRTUAL = "LIVE_VIRTUAL"
    IN_STUDIO = "IN_STUDIO"
    RECORDED = "RECORDED"
    CONTACT_REQUEST = "CONTACT_REQUEST"
    BACKGROUND = "BACKGROUND"
    OTHER = "OTHER"


class DedupeAction(str, Enum):
    """Relationship of a candidate record to stored records."""
    NONE = "none"
    AUTO_MERGED = "auto_merged"
    MERGE_SUGGESTED = "merge_suggested"
    POSSIBLE_DUPLICATE = "possible_duplicate"


class ParseMethod(str, Enum):
    REGEX = "regex"
    LLM = "llm"


class QueryStatus(str, Enum):
    """Review workflow status of a parsed query."""
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    DISCARDED = "discarded"
    ASSIGNED = "assigned"


@dataclass
class SourceDetectionResult:
    """Transient classification of an inbound email."""

    source_type: SourceType
    confidence: float
    indicators: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_type": self.source_type.value,
            "confidence": round(self.confidence, 4),
            "indicators": list(self.indicators),
        }


@dataclass
class ExtractedEvidence:
    """Source excerpt backing one extracted field."""

    field_name: str
    field_value: Optional[str]
    excerpt: str
    confidence: float
    start_char: Optional[int] = None
    end_char: Optional[int] = None


@dataclass
class CandidateQuery:
    """A media request extracted by a parser, before dedupe and persistence."""

    query_index: int
    parse_confidence: float
    parse_method: ParseMethod = ParseMethod.REGEX

    # Client-safe fields
    headline: Optional[str] = None
    summary: Optional[str] = None
    category: Optional[str] = None
    request_type: Optional[RequestType] = None
    query_text: Optional[str] = None
    expert_roles: List[str] = field(default_factory=list)
    expert_constraints: List[str] = field(default_factory=list)
    questions: List[str] = field(default_factory=list)

    # Deadline
    deadline_date: Optional[str] = None
    deadline_time: Optional[str] = None
    deadline_timezone: Optional[str] = None
    deadline_at: Optional[datetime] = None
    is_hard_deadline: bool = False

    # Broadcast
    broadcast_scheduled_at: Optional[datetime] = None
    broadcast_duration_minutes: Optional[int] = None
    broadcast_format: Optional[str] = None

    # Agency-only fields
    journalist_name: Optional[str] = None
    journalist_title: Optional[str] = None
    journalist_email: Optional[str] = None
    journalist_reply_alias: Optional[str] = None
    journalist_profile_url: Optional[str] = None
    outlet_name: Optional[str] = None
    outlet_website: Optional[str] = None

    # Dedupe fields, filled in by the pipeline
    dedupe_fingerprint: Optional[str] = None
    dedupe_action: DedupeAction = DedupeAction.NONE
    duplicate_of_query_id: Optional[str] = None
    similar_query_ids: List[str] = field(default_factory=list)

    evidence: List[ExtractedEvidence] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view used by the dry-run endpoint and CLI."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
            elif isinstance(value, Enum):
                data[key] = value.value
        return data


@dataclass
class ParserResult:
    """Output of any format parser."""

    success: bool
    queries: List[CandidateQuery] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    parse_confidence: float = 0.0
    parse_method: ParseMethod = ParseMethod.REGEX

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "queries": [query.to_dict() for query in self.queries],
            "errors": list(self.errors),
            "parse_confidence": round(self.parse_confidence, 4),
            "parse_method": self.parse_method.value,
        }


@dataclass
class DedupeResult:
    """Outcome of classifying a fingerprint against stored records."""

    action: DedupeAction
    duplicate_of_id: Optional[str] = None
    similar_ids: List[str] = field(default_factory=list)


@dataclass
class IngestionResult:
    """Definitive outcome of one webhook delivery."""

    success: bool
    ingestion_job_id: str
    source_type: SourceType
    status: JobStatus
    queries_created: int = 0
    queries_merged: int = 0
    errors: List[str] = field(default_factory=list)
    duplicate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingestion_job_id": self.ingestion_job_id,
            "source_type": self.source_type.value,
            "status": self.status.value,
            "queries_created": self.queries_created,
            "queries_merged": self.queries_merged,
            "errors": list(self.errors),
            "duplicate": self.duplicate,
        }


class InboundEmail(BaseModel):
    """Webhook payload from the email-to-webhook bridge."""

    model_config = ConfigDict(populate_by_name=True)

    from_address: str = Field(..., alias="from")
    to: Optional[str] = None
    subject: str
    body_text: str
    body_html: Optional[str] = None
    received_at: Optional[datetime] = None
    message_id: Optional[str] = None
    folder_id: Optional[str] = None
    thread_id: Optional[str] = None
    has_attachments: bool = False
    api_key: Optional[str] = None

    def audit_payload(self) -> Dict[str, Any]:
        """Raw payload retained on the job, without the shared secret."""
        return self.model_dump(mode="json", by_alias=True, exclude={"api_key"})
