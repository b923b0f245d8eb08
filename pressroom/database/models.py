"""SQLAlchemy 2.0 models for the pressroom database."""

from datetime import datetime
from typing import Optional, List
from uuid import uuid4
from sqlalchemy import (
    String, DateTime, Boolean, Integer, Float, ForeignKey, UniqueConstraint, Index, Text
)
from sqlalchemy.orm import relationship, Mapped, mapped_column, DeclarativeBase
from sqlalchemy.sql import func


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class IngestionJob(Base):
    """One inbound email and its processing lifecycle."""

    __tablename__ = "ingestion_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    agency_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Source email
    email_from: Mapped[str] = mapped_column(String(500), nullable=False)
    email_to: Mapped[Optional[str]] = mapped_column(String(500))
    email_subject: Mapped[str] = mapped_column(String(1000), nullable=False)
    email_body_text: Mapped[str] = mapped_column(Text, nullable=False)
    email_body_html: Mapped[Optional[str]] = mapped_column(Text)
    email_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    email_message_id: Mapped[Optional[str]] = mapped_column(String(500))
    email_has_attachments: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    folder_id: Mapped[Optional[str]] = mapped_column(String(500))
    thread_id: Mapped[Optional[str]] = mapped_column(String(500))

    # Detection and processing
    source_type: Mapped[Optional[str]] = mapped_column(String(20))
    source_confidence: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="received")
    queries_extracted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    queries_merged: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    parse_errors: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    processing_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    error_details: Mapped[Optional[str]] = mapped_column(Text)
    raw_payload: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    queries: Mapped[List["ParsedQuery"]] = relationship("ParsedQuery", back_populates="ingestion_job")

    __table_args__ = (
        UniqueConstraint("email_message_id", name="uq_ingestion_jobs_message_id"),
        Index("idx_ingestion_jobs_agency_status", "agency_id", "status"),
        Index("idx_ingestion_jobs_agency_created", "agency_id", "created_at"),
    )


class ParsedQuery(Base):
    """A normalized media request extracted from an ingestion job."""

    __tablename__ = "parsed_queries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    agency_id: Mapped[str] = mapped_column(String(100), nullable=False)
    ingestion_job_id: Mapped[str] = mapped_column(String(36), ForeignKey("ingestion_jobs.id"), nullable=False)
    query_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Client-safe fields
    headline: Mapped[Optional[str]] = mapped_column(String(1000))
    summary: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(200))
    request_type: Mapped[Optional[str]] = mapped_column(String(30))
    query_text: Mapped[Optional[str]] = mapped_column(Text)
    expert_roles: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    expert_constraints: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    questions: Mapped[str] = mapped_column(Text, default="[]", nullable=False)

    # Deadline
    deadline_date: Mapped[Optional[str]] = mapped_column(String(50))
    deadline_time: Mapped[Optional[str]] = mapped_column(String(50))
    deadline_timezone: Mapped[Optional[str]] = mapped_column(String(100))
    deadline_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_hard_deadline: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Broadcast
    broadcast_scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    broadcast_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    broadcast_format: Mapped[Optional[str]] = mapped_column(String(30))

    # Agency-only fields
    journalist_name: Mapped[Optional[str]] = mapped_column(String(500))
    journalist_title: Mapped[Optional[str]] = mapped_column(String(500))
    journalist_email: Mapped[Optional[str]] = mapped_column(String(500))
    journalist_reply_alias: Mapped[Optional[str]] = mapped_column(String(500))
    journalist_profile_url: Mapped[Optional[str]] = mapped_column(String(1000))
    outlet_name: Mapped[Optional[str]] = mapped_column(String(500))
    outlet_website: Mapped[Optional[str]] = mapped_column(String(1000))

    # Deduplication
    dedupe_fingerprint: Mapped[Optional[str]] = mapped_column(String(64))
    dedupe_action: Mapped[str] = mapped_column(String(30), default="none", nullable=False)
    duplicate_of_query_id: Mapped[Optional[str]] = mapped_column(String(36))
    similar_query_ids: Mapped[str] = mapped_column(Text, default="[]", nullable=False)

    # Parse quality
    parse_confidence: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    parse_method: Mapped[str] = mapped_column(String(10), default="regex", nullable=False)

    # Review workflow
    status: Mapped[str] = mapped_column(String(30), default="pending_review", nullable=False)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(100))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    review_notes: Mapped[Optional[str]] = mapped_column(Text)
    assigned_client_ids: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    assigned_by: Mapped[Optional[str]] = mapped_column(String(100))
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    opportunity_id: Mapped[Optional[str]] = mapped_column(String(36))
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    ingestion_job: Mapped["IngestionJob"] = relationship("IngestionJob", back_populates="queries")
    evidence: Mapped[List["ParseEvidence"]] = relationship(
        "ParseEvidence", back_populates="parsed_query", cascade="all, delete-orphan", order_by="ParseEvidence.created_at"
    )

    __table_args__ = (
        UniqueConstraint("agency_id", "dedupe_fingerprint", name="uq_parsed_queries_agency_fingerprint"),
        Index("idx_parsed_queries_agency_status", "agency_id", "status"),
        Index("idx_parsed_queries_job", "ingestion_job_id"),
        Index("idx_parsed_queries_deadline", "agency_id", "deadline_at"),
    )


class ParseEvidence(Base):
    """Verbatim source excerpt backing one extracted field."""

    __tablename__ = "parse_evidence"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    parsed_query_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("parsed_queries.id", ondelete="CASCADE"), nullable=False
    )
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    field_value: Mapped[Optional[str]] = mapped_column(Text)
    excerpt: Mapped[str] = mapped_column(Text, nullable=False)
    start_char: Mapped[Optional[int]] = mapped_column(Integer)
    end_char: Mapped[Optional[int]] = mapped_column(Integer)
    confidence: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    parsed_query: Mapped["ParsedQuery"] = relationship("ParsedQuery", back_populates="evidence")

    __table_args__ = (
        Index("idx_parse_evidence_query", "parsed_query_id"),
    )
