"""Evidence construction for extracted fields."""

from typing import Optional, Tuple

from .models import ExtractedEvidence

EXCERPT_CONTEXT_CHARS = 20


def locate(text: str, target: str) -> Optional[Tuple[int, int]]:
    """Case-insensitive span of ``target`` inside ``text``."""
    if not text or not target:
        return None
    index = text.lower().find(target.lower())
    if index == -1:
        return None
    return index, index + len(target)


def find_excerpt(text: str, target: str, context: int = EXCERPT_CONTEXT_CHARS) -> str:
    """Return ``target`` with surrounding context, ellipsized at cut edges.

    Falls back to the target itself when it does not occur in the text.
    """
    span = locate(text, target)
    if span is None:
        return target

    start = max(0, span[0] - context)
    end = min(len(text), span[1] + context)
    excerpt = text[start:end]
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(text):
        excerpt = excerpt + "..."
    return excerpt


def span_evidence(
    field_name: str,
    field_value: Optional[str],
    excerpt: str,
    confidence: float,
    offset: Optional[int] = None,
) -> ExtractedEvidence:
    """Evidence for a verbatim excerpt at a known offset in the source body."""
    start_char = offset
    end_char = offset + len(excerpt) if offset is not None else None
    return ExtractedEvidence(
        field_name=field_name,
        field_value=field_value,
        excerpt=excerpt,
        confidence=round(confidence, 2),
        start_char=start_char,
        end_char=end_char,
    )


def context_evidence(
    field_name: str,
    field_value: Optional[str],
    text: str,
    target: str,
    confidence: float,
) -> ExtractedEvidence:
    """Evidence whose excerpt is ``target`` in context; the span covers the target only."""
    span = locate(text, target)
    return ExtractedEvidence(
        field_name=field_name,
        field_value=field_value,
        excerpt=find_excerpt(text, target),
        confidence=round(confidence, 2),
        start_char=span[0] if span else None,
        end_char=span[1] if span else None,
    )
