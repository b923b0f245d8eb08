"""Custom exceptions for the application."""

from typing import Optional, Dict, Any, List


class WebhookValidationError(Exception):
    """Raised when an inbound webhook payload is missing required fields."""

    def __init__(self, missing_fields: List[str], trace_id: Optional[str] = None):
        self.missing_fields = missing_fields
        self.trace_id = trace_id
        self.message = "Missing required fields: " + ", ".join(missing_fields)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": "validation_error",
            "missing_fields": self.missing_fields,
            "trace_id": self.trace_id,
            "message": self.message
        }


class WebhookUnauthorizedError(Exception):
    """Raised when the webhook shared secret is configured and does not match."""

    def __init__(self, trace_id: Optional[str] = None):
        self.trace_id = trace_id
        self.message = "Invalid or missing webhook API key"
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": "unauthorized",
            "trace_id": self.trace_id,
            "message": self.message
        }


class ReviewerRequiredError(Exception):
    """Raised when a review action arrives without a reviewer identity."""

    def __init__(self, trace_id: Optional[str] = None):
        self.trace_id = trace_id
        self.message = "X-User-ID header is required for review actions"
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "unauthorized",
            "trace_id": self.trace_id,
            "message": self.message
        }


class QueryNotFoundError(Exception):
    """Raised when a parsed query does not exist for the calling tenant."""

    def __init__(self, query_id: str, tenant_id: Optional[str] = None, trace_id: Optional[str] = None):
        self.query_id = query_id
        self.tenant_id = tenant_id
        self.trace_id = trace_id
        self.message = f"Parsed query '{query_id}' not found"
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": "not_found",
            "query_id": self.query_id,
            "tenant_id": self.tenant_id,
            "trace_id": self.trace_id,
            "message": self.message
        }


class JobNotFoundError(Exception):
    """Raised when an ingestion job does not exist for the calling tenant."""

    def __init__(self, job_id: str, tenant_id: Optional[str] = None, trace_id: Optional[str] = None):
        self.job_id = job_id
        self.tenant_id = tenant_id
        self.trace_id = trace_id
        self.message = f"Ingestion job '{job_id}' not found"
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": "not_found",
            "job_id": self.job_id,
            "tenant_id": self.tenant_id,
            "trace_id": self.trace_id,
            "message": self.message
        }


class LlmExtractionError(Exception):
    """Raised by an LLM backend when a call fails, times out or returns unusable output."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        self.message = f"LLM provider '{provider}' extraction failed: {reason}"
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "llm_extraction_failed",
            "provider": self.provider,
            "message": self.message
        }
