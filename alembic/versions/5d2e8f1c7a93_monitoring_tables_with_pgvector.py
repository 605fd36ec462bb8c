"""Monitoring tables: projects, error events and groups, AI cache and documents.

Revision ID: 5d2e8f1c7a93
Revises: 1a7c3e9b2f40
Create Date: 2026-10-18 09:30:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "5d2e8f1c7a93"
down_revision: Union[str, None] = "1a7c3e9b2f40"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSIONS = 1536


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # Enable pgvector extension
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("platform", sa.String(length=50), nullable=False),
        sa.Column("dsn", sa.String(length=512), nullable=True),
        sa.Column("public_key", sa.String(length=64), nullable=False),
        sa.Column("secret_key", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("organization_id", sa.String(length=255), nullable=True),
        sa.Column("team_id", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index(op.f("ix_projects_public_key"), "projects", ["public_key"], unique=True)

    op.create_table(
        "error_groups",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("fingerprint_hash", sa.String(length=64), nullable=False),
        sa.Column("fingerprint", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="unresolved"),
        sa.Column("event_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("ai_suggestions", sa.Text(), nullable=True),
        sa.Column("assignee_id", sa.String(length=255), nullable=True),
        sa.Column("first_seen", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "fingerprint_hash", name="uq_error_groups_fingerprint"),
    )
    op.create_index(
        "ix_error_groups_project_status", "error_groups", ["project_id", "status"]
    )
    op.create_index("ix_error_groups_last_seen", "error_groups", ["last_seen"])

    op.create_table(
        "error_events",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("level", sa.String(length=20), nullable=False, server_default="error"),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=255), nullable=False, server_default="Error"),
        sa.Column("handled", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("severity", sa.String(length=20), nullable=False, server_default="error"),
        sa.Column("platform", sa.String(length=50), nullable=False),
        sa.Column("platform_version", sa.String(length=50), nullable=True),
        sa.Column("sdk", sa.Text(), nullable=True),
        sa.Column("sdk_version", sa.String(length=50), nullable=True),
        sa.Column("release", sa.String(length=255), nullable=True),
        sa.Column(
            "environment", sa.String(length=100), nullable=False, server_default="production"
        ),
        sa.Column("server_name", sa.String(length=255), nullable=True),
        sa.Column("runtime", sa.String(length=100), nullable=True),
        sa.Column("runtime_version", sa.String(length=50), nullable=True),
        sa.Column("transaction", sa.String(length=512), nullable=True),
        sa.Column("transaction_duration", sa.Float(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("method", sa.String(length=10), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("user_hash", sa.String(length=64), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=True),
        sa.Column("client_info", postgresql.JSONB(), nullable=True),
        sa.Column("exception", postgresql.JSONB(), nullable=True),
        sa.Column("exception_type", sa.String(length=255), nullable=True),
        sa.Column("exception_value", sa.Text(), nullable=True),
        sa.Column("exception_module", sa.String(length=255), nullable=True),
        sa.Column("stack_trace", sa.Text(), nullable=True),
        sa.Column("frames_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("request", postgresql.JSONB(), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("extra", postgresql.JSONB(), nullable=True),
        sa.Column("breadcrumbs", postgresql.JSONB(), nullable=True),
        sa.Column("contexts", postgresql.JSONB(), nullable=True),
        sa.Column("fingerprint", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("memory_usage", sa.Float(), nullable=True),
        sa.Column("cpu_usage", sa.Float(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("first_seen", sa.DateTime(timezone=True), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_sample", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sample_rate", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("has_been_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["error_groups.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_error_events_project_timestamp", "error_events", ["project_id", "timestamp"]
    )
    op.create_index("ix_error_events_group", "error_events", ["group_id"])

    op.create_table(
        "ai_analysis_cache",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("fingerprint_hash", sa.String(length=64), nullable=False),
        sa.Column("analysis_type", sa.String(length=30), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("analysis_result", sa.Text(), nullable=False),
        sa.Column("prompt_hash", sa.String(length=16), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=False, server_default="0.8"),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("error_patterns", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "last_used_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("projects_used", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("avg_feedback_score", sa.Float(), nullable=True),
        sa.Column("feedback_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tokens_saved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost_saved_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_ai_analysis_cache_lookup", "ai_analysis_cache", ["fingerprint_hash", "analysis_type"]
    )
    op.create_index("ix_ai_analysis_cache_last_used", "ai_analysis_cache", ["last_used_at"])

    # Vector store for similarity search over indexed errors
    op.execute(f"""
        CREATE TABLE ai_documents (
            id VARCHAR(255) PRIMARY KEY,
            content TEXT NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{{}}',
            namespace VARCHAR(100) NOT NULL DEFAULT 'default',
            embedding vector({EMBEDDING_DIMENSIONS}),
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
            updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
        )
    """)
    op.create_index("ix_ai_documents_namespace", "ai_documents", ["namespace"])

    # Create HNSW index for vector search
    op.execute(
        "CREATE INDEX idx_ai_documents_embedding ON ai_documents USING hnsw (embedding vector_cosine_ops) "
        "WITH (m=16, ef_construction=64)"
    )


def downgrade() -> None:
    op.drop_index("idx_ai_documents_embedding", table_name="ai_documents")
    op.drop_index("ix_ai_documents_namespace", table_name="ai_documents")
    op.drop_table("ai_documents")
    op.drop_index("ix_ai_analysis_cache_last_used", table_name="ai_analysis_cache")
    op.drop_index("ix_ai_analysis_cache_lookup", table_name="ai_analysis_cache")
    op.drop_table("ai_analysis_cache")
    op.drop_index("ix_error_events_group", table_name="error_events")
    op.drop_index("ix_error_events_project_timestamp", table_name="error_events")
    op.drop_table("error_events")
    op.drop_index("ix_error_groups_last_seen", table_name="error_groups")
    op.drop_index("ix_error_groups_project_status", table_name="error_groups")
    op.drop_table("error_groups")
    op.drop_index(op.f("ix_projects_public_key"), table_name="projects")
    op.drop_table("projects")
