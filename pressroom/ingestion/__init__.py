"""Media-query ingestion package for Pressroom."""

from .pipeline import IngestionPipeline
from .detector import detect_email_source, describe_source_type
from .structured import StructuredQueryParser
from .digest import DigestQueryParser
from .single import SingleQueryParser
from .deduplication import DeduplicationEngine, compute_fingerprint
from .models import (
    CandidateQuery,
    InboundEmail,
    IngestionResult,
    ParserResult,
    SourceDetectionResult,
    SourceType,
)

__all__ = [
    "IngestionPipeline",
    "detect_email_source",
    "describe_source_type",
    "StructuredQueryParser",
    "DigestQueryParser",
    "SingleQueryParser",
    "DeduplicationEngine",
    "compute_fingerprint",
    "CandidateQuery",
    "InboundEmail",
    "IngestionResult",
    "ParserResult",
    "SourceDetectionResult",
    "SourceType",
]
