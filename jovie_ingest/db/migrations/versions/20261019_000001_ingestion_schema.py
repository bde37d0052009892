"""Create ingestion tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

This migration creates the ingestion schema:
- creator_profiles: ingestion status, enrichment locks, merge version
- social_links: unique per (profile, platform, canonical id)
- ingestion_jobs: durable queue with a partial unique index on active dedup keys
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_JOB_PREDICATE = "status IN ('pending', 'processing')"


def upgrade() -> None:
    op.create_table(
        "creator_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("avatar_url", sa.String(1000), nullable=True),
        sa.Column("display_name_locked", sa.Boolean(), default=False),
        sa.Column("avatar_locked", sa.Boolean(), default=False),
        sa.Column("ingestion_status", sa.String(20), nullable=False, server_default="idle"),
        sa.Column("last_ingestion_error", sa.Text(), nullable=True),
        sa.Column("merge_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_creator_profiles_username", "creator_profiles", ["username"], unique=True)
    op.create_index("ix_creator_profiles_ingestion_status", "creator_profiles", ["ingestion_status"])

    op.create_table(
        "social_links",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "creator_profile_id",
            sa.String(36),
            sa.ForeignKey("creator_profiles.id"),
            nullable=False,
        ),
        sa.Column("platform_id", sa.String(50), nullable=False),
        sa.Column("canonical_id", sa.String(255), nullable=False),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="scraped"),
        sa.Column("confidence", sa.Float(), default=0.5),
        sa.Column("source_platform", sa.String(50), nullable=True),
        sa.Column("evidence_json", sa.Text(), default="{}"),
        sa.Column("display_text", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "creator_profile_id",
            "platform_id",
            "canonical_id",
            name="uq_social_links_profile_platform_canonical",
        ),
    )
    op.create_index("ix_social_links_creator_profile_id", "social_links", ["creator_profile_id"])

    op.create_table(
        "ingestion_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "creator_profile_id",
            sa.String(36),
            sa.ForeignKey("creator_profiles.id"),
            nullable=False,
        ),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("payload_json", sa.Text(), default="{}"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("dedup_key", sa.String(500), nullable=False),
        sa.Column("depth", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_host", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_ingestion_jobs_creator_profile_id", "ingestion_jobs", ["creator_profile_id"])
    op.create_index("ix_ingestion_jobs_source_host", "ingestion_jobs", ["source_host"])
    op.create_index(
        "ix_ingestion_jobs_claim_order", "ingestion_jobs", ["status", "priority", "created_at"]
    )
    op.create_index(
        "uq_ingestion_jobs_active_dedup",
        "ingestion_jobs",
        ["creator_profile_id", "dedup_key"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_JOB_PREDICATE),
        sqlite_where=sa.text(ACTIVE_JOB_PREDICATE),
    )


def downgrade() -> None:
    op.drop_index("uq_ingestion_jobs_active_dedup", table_name="ingestion_jobs")
    op.drop_index("ix_ingestion_jobs_claim_order", table_name="ingestion_jobs")
    op.drop_index("ix_ingestion_jobs_source_host", table_name="ingestion_jobs")
    op.drop_index("ix_ingestion_jobs_creator_profile_id", table_name="ingestion_jobs")
    op.drop_table("ingestion_jobs")

    op.drop_index("ix_social_links_creator_profile_id", table_name="social_links")
    op.drop_table("social_links")

    op.drop_index("ix_creator_profiles_ingestion_status", table_name="creator_profiles")
    op.drop_index("ix_creator_profiles_username", table_name="creator_profiles")
    op.drop_table("creator_profiles")
