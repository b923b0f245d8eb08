"""Deduplication engine for parsed media queries."""

import hashlib
from datetime import datetime, timezone
from typing import List, Optional, Protocol

import structlog

from ..config.ingestion import IngestionSettings, get_ingestion_settings
from .models import DedupeAction, DedupeResult

logger = structlog.get_logger(__name__)

FINGERPRINT_MARKER = "fp_"
# Hex characters taken from each digest half.
IDENTITY_DIGEST_CHARS = 7
CONTACT_DIGEST_CHARS = 9
HEADLINE_CHARS = 100


class FingerprintLookup(Protocol):
    """Storage lookups the engine needs, scoped to one tenant."""

    async def find_by_fingerprint(self, agency_id: str, fingerprint: str) -> Optional[str]:
        ...

    async def find_by_fingerprint_prefix(self, agency_id: str, prefix: str, limit: int) -> List[str]:
        ...


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _digest(text: str, length: int) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:length]


def compute_fingerprint(
    outlet_name: Optional[str],
    headline: Optional[str],
    deadline_at: Optional[datetime],
    journalist_email: Optional[str],
) -> str:
    """Stable identity of a media request.

    The leading characters hash only outlet and headline, so two records
    for the same story with a different deadline or contact share a prefix
    while differing in full.
    """
    identity = f"{_normalize(outlet_name)}|{_normalize(headline)[:HEADLINE_CHARS]}"

    deadline_day = ""
    if deadline_at is not None:
        if deadline_at.tzinfo is None:
            deadline_at = deadline_at.replace(tzinfo=timezone.utc)
        deadline_day = deadline_at.astimezone(timezone.utc).date().isoformat()
    contact = f"{deadline_day}|{_normalize(journalist_email)}"

    return (
        FINGERPRINT_MARKER
        + _digest(identity, IDENTITY_DIGEST_CHARS)
        + _digest(contact, CONTACT_DIGEST_CHARS)
    )


class DeduplicationEngine:
    """Classifies a fingerprint against records already stored for a tenant."""

    def __init__(self, settings: Optional[IngestionSettings] = None):
        self.settings = settings or get_ingestion_settings()

    def prefix_of(self, fingerprint: str) -> str:
        return fingerprint[:self.settings.fingerprint_prefix_length]

    async def classify(self, store: FingerprintLookup, agency_id: str, fingerprint: str) -> DedupeResult:
        """Exact match first, then prefix match, otherwise a new record."""
        duplicate_of = await store.find_by_fingerprint(agency_id, fingerprint)
        if duplicate_of:
            logger.info("Exact duplicate detected",
                        agency_id=agency_id,
                        fingerprint=fingerprint,
                        duplicate_of=duplicate_of)
            return DedupeResult(action=DedupeAction.AUTO_MERGED, duplicate_of_id=duplicate_of)

        similar = await store.find_by_fingerprint_prefix(
            agency_id, self.prefix_of(fingerprint), self.settings.similar_match_limit
        )
        if similar:
            logger.info("Similar queries detected",
                        agency_id=agency_id,
                        fingerprint=fingerprint,
                        similar_count=len(similar))
            return DedupeResult(action=DedupeAction.MERGE_SUGGESTED, similar_ids=similar)

        return DedupeResult(action=DedupeAction.NONE)
