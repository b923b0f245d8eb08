"""Initial database schema for Pressroom.

Revision ID: 0001
Revises: 
Create Date: 2025-12-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create ingestion jobs, parsed queries and parse evidence."""

    # Create ingestion_jobs table
    op.create_table('ingestion_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('agency_id', sa.String(length=100), nullable=False),
        sa.Column('email_from', sa.String(length=500), nullable=False),
        sa.Column('email_to', sa.String(length=500), nullable=True),
        sa.Column('email_subject', sa.String(length=1000), nullable=False),
        sa.Column('email_body_text', sa.Text(), nullable=False),
        sa.Column('email_body_html', sa.Text(), nullable=True),
        sa.Column('email_received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('email_message_id', sa.String(length=500), nullable=True),
        sa.Column('email_has_attachments', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('folder_id', sa.String(length=500), nullable=True),
        sa.Column('thread_id', sa.String(length=500), nullable=True),
        sa.Column('source_type', sa.String(length=20), nullable=True),
        sa.Column('source_confidence', sa.Float(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='received'),
        sa.Column('queries_extracted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('queries_merged', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parse_errors', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_details', sa.Text(), nullable=True),
        sa.Column('raw_payload', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email_message_id', name='uq_ingestion_jobs_message_id')
    )
    op.create_index('idx_ingestion_jobs_agency_status', 'ingestion_jobs', ['agency_id', 'status'])
    op.create_index('idx_ingestion_jobs_agency_created', 'ingestion_jobs', ['agency_id', 'created_at'])

    # Create parsed_queries table
    op.create_table('parsed_queries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('agency_id', sa.String(length=100), nullable=False),
        sa.Column('ingestion_job_id', sa.String(length=36), nullable=False),
        sa.Column('query_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('headline', sa.String(length=1000), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=200), nullable=True),
        sa.Column('request_type', sa.String(length=30), nullable=True),
        sa.Column('query_text', sa.Text(), nullable=True),
        sa.Column('expert_roles', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('expert_constraints', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('questions', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('deadline_date', sa.String(length=50), nullable=True),
        sa.Column('deadline_time', sa.String(length=50), nullable=True),
        sa.Column('deadline_timezone', sa.String(length=100), nullable=True),
        sa.Column('deadline_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_hard_deadline', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('broadcast_scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('broadcast_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('broadcast_format', sa.String(length=30), nullable=True),
        sa.Column('journalist_name', sa.String(length=500), nullable=True),
        sa.Column('journalist_title', sa.String(length=500), nullable=True),
        sa.Column('journalist_email', sa.String(length=500), nullable=True),
        sa.Column('journalist_reply_alias', sa.String(length=500), nullable=True),
        sa.Column('journalist_profile_url', sa.String(length=1000), nullable=True),
        sa.Column('outlet_name', sa.String(length=500), nullable=True),
        sa.Column('outlet_website', sa.String(length=1000), nullable=True),
        sa.Column('dedupe_fingerprint', sa.String(length=64), nullable=True),
        sa.Column('dedupe_action', sa.String(length=30), nullable=False, server_default='none'),
        sa.Column('duplicate_of_query_id', sa.String(length=36), nullable=True),
        sa.Column('similar_query_ids', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('parse_confidence', sa.Float(), nullable=False, server_default='0'),
        sa.Column('parse_method', sa.String(length=10), nullable=False, server_default='regex'),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='pending_review'),
        sa.Column('reviewed_by', sa.String(length=100), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('assigned_client_ids', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('assigned_by', sa.String(length=100), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('opportunity_id', sa.String(length=36), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['ingestion_job_id'], ['ingestion_jobs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('agency_id', 'dedupe_fingerprint', name='uq_parsed_queries_agency_fingerprint')
    )
    op.create_index('idx_parsed_queries_agency_status', 'parsed_queries', ['agency_id', 'status'])
    op.create_index('idx_parsed_queries_job', 'parsed_queries', ['ingestion_job_id'])
    op.create_index('idx_parsed_queries_deadline', 'parsed_queries', ['agency_id', 'deadline_at'])

    # Create parse_evidence table
    op.create_table('parse_evidence',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('parsed_query_id', sa.String(length=36), nullable=False),
        sa.Column('field_name', sa.String(length=100), nullable=False),
        sa.Column('field_value', sa.Text(), nullable=True),
        sa.Column('excerpt', sa.Text(), nullable=False),
        sa.Column('start_char', sa.Integer(), nullable=True),
        sa.Column('end_char', sa.Integer(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['parsed_query_id'], ['parsed_queries.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_parse_evidence_query', 'parse_evidence', ['parsed_query_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('parse_evidence')
    op.drop_table('parsed_queries')
    op.drop_table('ingestion_jobs')
