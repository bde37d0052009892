"""SQLAlchemy ORM models for the Jovie ingestion database.

These models define the tables the ingestion pipeline reads and writes:
- CreatorProfileDB (profile columns owned by ingestion: status, enrichment)
- SocialLinkDB (links merged from scraped, manual and verified sources)
- IngestionJobDB (durable job queue, never deleted)
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Partial index predicate shared by Postgres and SQLite.
ACTIVE_JOB_PREDICATE = "status IN ('pending', 'processing')"


# ============================================================================
# Creator Profiles
# ============================================================================


class CreatorProfileDB(Base):
    """
    Database model for creator profiles.

    ``ingestion_status`` is written only through the status manager.
    ``merge_version`` is bumped by every committed merge.
    """

    __tablename__ = "creator_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    display_name_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    avatar_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    ingestion_status: Mapped[str] = mapped_column(String(20), default="idle", index=True)
    last_ingestion_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    merge_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    # Relationships
    social_links: Mapped[list["SocialLinkDB"]] = relationship(
        "SocialLinkDB", back_populates="creator_profile"
    )

    def __repr__(self) -> str:
        return f"<CreatorProfileDB(id={self.id}, username='{self.username}', status={self.ingestion_status})>"


# ============================================================================
# Social Links
# ============================================================================


class SocialLinkDB(Base):
    """
    Database model for a creator's social / DSP link.

    One row per (profile, platform, canonical id). ``evidence_json`` holds the
    union of sources and extraction signals that produced the link.
    """

    __tablename__ = "social_links"
    __table_args__ = (
        UniqueConstraint(
            "creator_profile_id",
            "platform_id",
            "canonical_id",
            name="uq_social_links_profile_platform_canonical",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    creator_profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("creator_profiles.id"), nullable=False, index=True
    )
    platform_id: Mapped[str] = mapped_column(String(50), nullable=False)
    canonical_id: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    source: Mapped[str] = mapped_column(String(20), default="scraped", nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.5)
    source_platform: Mapped[str | None] = mapped_column(String(50), nullable=True)
    evidence_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    display_text: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    # Relationships
    creator_profile: Mapped["CreatorProfileDB"] = relationship(
        "CreatorProfileDB", back_populates="social_links"
    )

    def __repr__(self) -> str:
        return (
            f"<SocialLinkDB(id={self.id}, platform={self.platform_id}, "
            f"canonical_id='{self.canonical_id}', source={self.source})>"
        )


# ============================================================================
# Ingestion Jobs
# ============================================================================


class IngestionJobDB(Base):
    """
    Database model for queued ingestion jobs.

    At most one pending/processing job may exist per
    (creator_profile_id, dedup_key); the partial unique index enforces it.
    """

    __tablename__ = "ingestion_jobs"
    __table_args__ = (
        Index(
            "uq_ingestion_jobs_active_dedup",
            "creator_profile_id",
            "dedup_key",
            unique=True,
            postgresql_where=text(ACTIVE_JOB_PREDICATE),
            sqlite_where=text(ACTIVE_JOB_PREDICATE),
        ),
        Index("ix_ingestion_jobs_claim_order", "status", "priority", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    creator_profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("creator_profiles.id"), nullable=False, index=True
    )
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    dedup_key: Mapped[str] = mapped_column(String(500), nullable=False)
    depth: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    source_host: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<IngestionJobDB(id={self.id}, type={self.job_type}, "
            f"status={self.status}, depth={self.depth})>"
        )
