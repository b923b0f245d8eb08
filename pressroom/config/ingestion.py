"""Ingestion configuration settings for the media-query pipeline."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class IngestionSettings(BaseSettings):
    """Ingestion configuration settings."""

    # Webhook
    webhook_api_key: Optional[str] = Field(default=None)
    default_agency_id: str = Field(default="agency_default")

    # Parser confidence
    structured_confidence: float = Field(default=0.95)
    digest_confidence: float = Field(default=0.85)
    single_success_floor: float = Field(default=0.3)
    llm_confidence_threshold: float = Field(default=0.8)
    llm_default_confidence: float = Field(default=0.9)
    summary_length: int = Field(default=500)

    # Deduplication
    fingerprint_prefix_length: int = Field(default=10)
    similar_match_limit: int = Field(default=5)

    # Fallback timezone for deadline phrases that do not name one
    default_timezone: str = Field(default="Eastern Standard Time")

    @field_validator(
        "structured_confidence",
        "digest_confidence",
        "single_success_floor",
        "llm_confidence_threshold",
        "llm_default_confidence",
    )
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        """Validate confidence values."""
        if v < 0.0 or v > 1.0:
            raise ValueError("Confidence values must be between 0.0 and 1.0")
        return v

    @field_validator("fingerprint_prefix_length")
    @classmethod
    def validate_prefix_length(cls, v: int) -> int:
        """Prefix must cover the 'fp_' marker and part of the outlet/headline digest."""
        if v < 4 or v > 10:
            raise ValueError("Fingerprint prefix length must be between 4 and 10")
        return v

    @field_validator("similar_match_limit")
    @classmethod
    def validate_similar_limit(cls, v: int) -> int:
        if v < 1 or v > 50:
            raise ValueError("Similar match limit must be between 1 and 50")
        return v

    model_config = {
        "env_prefix": "INGESTION_",
        "case_sensitive": False,
    }


def get_ingestion_settings() -> IngestionSettings:
    """Get ingestion settings instance."""
    return IngestionSettings()
