"""Repository classes for creator profile and social link database operations."""

import json
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from jovie_ingest.core.enums import IngestionStatus, LinkSource
from jovie_ingest.core.schema import CreatorProfile, LinkEvidence, SocialLink
from jovie_ingest.db.models import CreatorProfileDB, SocialLinkDB


# ============================================================================
# Creator Profiles
# ============================================================================


class CreatorProfileRepository:
    """Repository for CreatorProfile CRUD operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, profile: CreatorProfile) -> CreatorProfile:
        """
        Create a new creator profile.

        ``ingestion_status`` always starts idle; it is only changed by the
        status manager afterwards.
        """
        db_item = CreatorProfileDB(
            id=str(profile.id),
            username=profile.username,
            display_name=profile.display_name,
            avatar_url=profile.avatar_url,
            display_name_locked=profile.display_name_locked,
            avatar_locked=profile.avatar_locked,
            ingestion_status=IngestionStatus.IDLE.value,
            merge_version=0,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, profile_id: UUID | str) -> CreatorProfile | None:
        """Get a profile by ID."""
        stmt = select(CreatorProfileDB).where(CreatorProfileDB.id == str(profile_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def get_by_username(self, username: str) -> CreatorProfile | None:
        """Get a profile by username (case-insensitive)."""
        stmt = select(CreatorProfileDB).where(CreatorProfileDB.username == username.strip().lower())
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def resolve(self, id_or_username: str) -> CreatorProfile | None:
        """Look a profile up by ID, falling back to username."""
        return self.get_by_id(id_or_username) or self.get_by_username(id_or_username)

    def list_all(self, limit: int = 100, offset: int = 0) -> list[CreatorProfile]:
        """List profiles with pagination."""
        stmt = (
            select(CreatorProfileDB)
            .order_by(CreatorProfileDB.username)
            .limit(limit)
            .offset(offset)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(p) for p in result]

    def set_locks(
        self,
        profile_id: UUID | str,
        display_name_locked: bool | None = None,
        avatar_locked: bool | None = None,
    ) -> CreatorProfile:
        """Lock or unlock user-edited profile fields against enrichment."""
        stmt = select(CreatorProfileDB).where(CreatorProfileDB.id == str(profile_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        if db_item is None:
            raise ValueError(f"Creator profile with id {profile_id} not found")
        if display_name_locked is not None:
            db_item.display_name_locked = display_name_locked
        if avatar_locked is not None:
            db_item.avatar_locked = avatar_locked
        self.session.flush()
        return self._to_domain(db_item)

    def _to_domain(self, db_item: CreatorProfileDB) -> CreatorProfile:
        """Convert database model to domain model."""
        return CreatorProfile(
            id=UUID(db_item.id),
            username=db_item.username,
            display_name=db_item.display_name,
            avatar_url=db_item.avatar_url,
            display_name_locked=db_item.display_name_locked,
            avatar_locked=db_item.avatar_locked,
            ingestion_status=IngestionStatus(db_item.ingestion_status),
            last_ingestion_error=db_item.last_ingestion_error,
            merge_version=db_item.merge_version,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )


# ============================================================================
# Social Links
# ============================================================================


class SocialLinkRepository:
    """
    Repository for SocialLink operations outside the merge engine.

    Scraped links are written only by the merge engine; this repository
    adds manual and verified links and reads links back.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(self, link: SocialLink) -> SocialLink:
        """Create a link (typically manual or verified)."""
        db_item = SocialLinkDB(
            id=str(link.id),
            creator_profile_id=str(link.creator_profile_id),
            platform_id=link.platform_id,
            canonical_id=link.canonical_id,
            url=link.url,
            source=link.source.value,
            confidence=link.confidence,
            source_platform=link.source_platform,
            evidence_json=link.evidence.model_dump_json(),
            display_text=link.display_text,
            created_at=link.created_at,
            updated_at=link.updated_at,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get(self, profile_id: UUID | str, platform_id: str, canonical_id: str) -> SocialLink | None:
        """Get a profile's link for a platform identity."""
        stmt = select(SocialLinkDB).where(
            SocialLinkDB.creator_profile_id == str(profile_id),
            SocialLinkDB.platform_id == platform_id,
            SocialLinkDB.canonical_id == canonical_id,
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_for_profile(self, profile_id: UUID | str) -> list[SocialLink]:
        """List a profile's links ordered by platform."""
        stmt = (
            select(SocialLinkDB)
            .where(SocialLinkDB.creator_profile_id == str(profile_id))
            .order_by(SocialLinkDB.platform_id, SocialLinkDB.canonical_id)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(link) for link in result]

    def count_for_profile(self, profile_id: UUID | str) -> int:
        stmt = (
            select(func.count())
            .select_from(SocialLinkDB)
            .where(SocialLinkDB.creator_profile_id == str(profile_id))
        )
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: SocialLinkDB) -> SocialLink:
        """Convert database model to domain model."""
        return SocialLink(
            id=UUID(db_item.id),
            creator_profile_id=UUID(db_item.creator_profile_id),
            platform_id=db_item.platform_id,
            canonical_id=db_item.canonical_id,
            url=db_item.url,
            source=LinkSource(db_item.source),
            confidence=db_item.confidence,
            source_platform=db_item.source_platform,
            evidence=LinkEvidence.model_validate(json.loads(db_item.evidence_json or "{}")),
            display_text=db_item.display_text,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )
