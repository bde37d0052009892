"""Tests for the creator profile and social link repositories."""

import tempfile
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from jovie_ingest.core.enums import IngestionStatus, LinkSource
from jovie_ingest.core.schema import CreatorProfile, LinkEvidence, SocialLink
from jovie_ingest.db.models import Base
from jovie_ingest.db.repositories import CreatorProfileRepository, SocialLinkRepository


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine."""
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


class TestCreatorProfileRepository:
    """Tests for CreatorProfileRepository."""

    def test_create_and_get(self, session) -> None:
        """Test creating a profile and reading it back."""
        repo = CreatorProfileRepository(session)
        created = repo.create(CreatorProfile(username="TestArtist", display_name="Test Artist"))
        session.commit()

        fetched = repo.get_by_id(created.id)
        assert fetched is not None
        assert fetched.username == "testartist"
        assert fetched.display_name == "Test Artist"
        assert fetched.merge_version == 0

    def test_create_always_starts_idle(self, session) -> None:
        """Test that the initial status is idle regardless of input."""
        repo = CreatorProfileRepository(session)
        created = repo.create(
            CreatorProfile(username="artist", ingestion_status=IngestionStatus.FAILED, merge_version=4)
        )
        assert created.ingestion_status == IngestionStatus.IDLE
        assert created.merge_version == 0

    def test_get_missing(self, session) -> None:
        """Test looking up a missing profile."""
        assert CreatorProfileRepository(session).get_by_id(uuid4()) is None

    def test_get_by_username_case_insensitive(self, session) -> None:
        """Test username lookup."""
        repo = CreatorProfileRepository(session)
        repo.create(CreatorProfile(username="artist"))
        assert repo.get_by_username("  ARTIST ") is not None
        assert repo.get_by_username("other") is None

    def test_resolve(self, session) -> None:
        """Test resolving by id or username."""
        repo = CreatorProfileRepository(session)
        created = repo.create(CreatorProfile(username="artist"))

        assert repo.resolve(str(created.id)).id == created.id
        assert repo.resolve("artist").id == created.id
        assert repo.resolve("nobody") is None

    def test_duplicate_username(self, session) -> None:
        """Test that usernames are unique."""
        repo = CreatorProfileRepository(session)
        repo.create(CreatorProfile(username="artist"))
        with pytest.raises(IntegrityError):
            repo.create(CreatorProfile(username="Artist"))

    def test_list_all(self, session) -> None:
        """Test listing profiles ordered by username with pagination."""
        repo = CreatorProfileRepository(session)
        for name in ("charlie", "alpha", "bravo"):
            repo.create(CreatorProfile(username=name))

        assert [p.username for p in repo.list_all()] == ["alpha", "bravo", "charlie"]
        assert [p.username for p in repo.list_all(limit=1, offset=1)] == ["bravo"]

    def test_set_locks(self, session) -> None:
        """Test locking and unlocking enrichable fields."""
        repo = CreatorProfileRepository(session)
        created = repo.create(CreatorProfile(username="artist"))

        locked = repo.set_locks(created.id, display_name_locked=True)
        assert locked.display_name_locked is True
        assert locked.avatar_locked is False

        unlocked = repo.set_locks(created.id, display_name_locked=False, avatar_locked=True)
        assert unlocked.display_name_locked is False
        assert unlocked.avatar_locked is True

    def test_set_locks_missing(self, session) -> None:
        """Test locking a missing profile."""
        with pytest.raises(ValueError, match="not found"):
            CreatorProfileRepository(session).set_locks(uuid4(), avatar_locked=True)


class TestSocialLinkRepository:
    """Tests for SocialLinkRepository."""

    @pytest.fixture
    def profile(self, session) -> CreatorProfile:
        """Create a profile to attach links to."""
        return CreatorProfileRepository(session).create(CreatorProfile(username="artist"))

    def test_create_manual_link(self, session, profile: CreatorProfile) -> None:
        """Test creating and reading a manual link."""
        repo = SocialLinkRepository(session)
        repo.create(
            SocialLink(
                creator_profile_id=profile.id,
                platform_id="instagram",
                canonical_id="artist",
                url="https://instagram.com/artist",
                source=LinkSource.MANUAL,
                confidence=1.0,
                evidence=LinkEvidence(sources=["admin"], signals=["manual"]),
            )
        )
        session.commit()

        link = repo.get(profile.id, "instagram", "artist")
        assert link is not None
        assert link.source == LinkSource.MANUAL
        assert link.confidence == 1.0
        assert link.evidence.sources == ["admin"]
        assert link.canonical_identity == "instagram:artist"

    def test_get_missing(self, session, profile: CreatorProfile) -> None:
        """Test looking up a missing link."""
        assert SocialLinkRepository(session).get(profile.id, "tiktok", "artist") is None

    def test_identity_is_unique_per_profile(self, session, profile: CreatorProfile) -> None:
        """Test the (profile, platform, canonical id) uniqueness."""
        repo = SocialLinkRepository(session)
        link = dict(
            creator_profile_id=profile.id,
            platform_id="spotify",
            canonical_id="abc123",
            url="https://open.spotify.com/artist/abc123",
        )
        repo.create(SocialLink(**link))
        with pytest.raises(IntegrityError):
            repo.create(SocialLink(**link))

    def test_list_and_count(self, session, profile: CreatorProfile) -> None:
        """Test listing links ordered by platform."""
        repo = SocialLinkRepository(session)
        for platform_id, canonical_id in (("youtube", "@artist"), ("instagram", "artist")):
            repo.create(
                SocialLink(
                    creator_profile_id=profile.id,
                    platform_id=platform_id,
                    canonical_id=canonical_id,
                    url=f"https://example.com/{canonical_id}",
                )
            )

        links = repo.list_for_profile(profile.id)
        assert [link.platform_id for link in links] == ["instagram", "youtube"]
        assert repo.count_for_profile(profile.id) == 2
        assert repo.count_for_profile(uuid4()) == 0
