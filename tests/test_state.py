"""Tests for the per-profile ingestion status state machine."""

import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from jovie_ingest.core.enums import IngestionEvent, IngestionStatus
from jovie_ingest.core.errors import InvalidStatusTransition
from jovie_ingest.core.schema import CreatorProfile
from jovie_ingest.db.models import Base, CreatorProfileDB
from jovie_ingest.db.repositories import CreatorProfileRepository
from jovie_ingest.ingestion.state import (
    TRANSITIONS,
    IngestionStatusManager,
    can_apply,
    next_status,
)


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


@pytest.fixture
def profile_id(session: Session) -> str:
    """Create an idle creator profile."""
    profile = CreatorProfileRepository(session).create(CreatorProfile(username="testartist"))
    session.commit()
    return str(profile.id)


class TestTransitionTable:
    """Tests for next_status and the transition table."""

    @pytest.mark.parametrize(
        "current,event,expected",
        [
            (IngestionStatus.IDLE, IngestionEvent.ENQUEUED, IngestionStatus.PENDING),
            (IngestionStatus.FAILED, IngestionEvent.ENQUEUED, IngestionStatus.PENDING),
            (IngestionStatus.PENDING, IngestionEvent.CLAIMED, IngestionStatus.PROCESSING),
            (IngestionStatus.PROCESSING, IngestionEvent.SUCCEEDED, IngestionStatus.IDLE),
            (IngestionStatus.PROCESSING, IngestionEvent.FAILED, IngestionStatus.FAILED),
            (IngestionStatus.PROCESSING, IngestionEvent.ENQUEUED, IngestionStatus.PROCESSING),
        ],
    )
    def test_allowed_transitions(
        self, current: IngestionStatus, event: IngestionEvent, expected: IngestionStatus
    ) -> None:
        """Test the allowed status transitions."""
        assert next_status(current, event) == expected

    @pytest.mark.parametrize(
        "current,event",
        [
            (IngestionStatus.IDLE, IngestionEvent.SUCCEEDED),
            (IngestionStatus.IDLE, IngestionEvent.CLAIMED),
            (IngestionStatus.IDLE, IngestionEvent.FAILED),
            (IngestionStatus.FAILED, IngestionEvent.SUCCEEDED),
            (IngestionStatus.PROCESSING, IngestionEvent.CLAIMED),
        ],
    )
    def test_rejected_transitions(self, current: IngestionStatus, event: IngestionEvent) -> None:
        """Test that transitions outside the table raise."""
        assert can_apply(current, event) is False
        with pytest.raises(InvalidStatusTransition):
            next_status(current, event)

    def test_no_transition_skips_processing(self) -> None:
        """Test that idle is only reachable from processing."""
        sources = {current for (current, _), new in TRANSITIONS.items() if new == IngestionStatus.IDLE}
        assert sources == {IngestionStatus.PROCESSING}


class TestIngestionStatusManager:
    """Tests for IngestionStatusManager."""

    def test_full_success_cycle(self, session: Session, profile_id: str) -> None:
        """Test idle -> pending -> processing -> idle."""
        manager = IngestionStatusManager(session)

        assert manager.apply(profile_id, IngestionEvent.ENQUEUED) == IngestionStatus.PENDING
        assert manager.apply(profile_id, IngestionEvent.CLAIMED) == IngestionStatus.PROCESSING
        assert manager.apply(profile_id, IngestionEvent.SUCCEEDED) == IngestionStatus.IDLE
        session.commit()

        assert manager.current(profile_id) == IngestionStatus.IDLE

    def test_failure_records_error(self, session: Session, profile_id: str) -> None:
        """Test that FAILED stores the error and SUCCEEDED clears it."""
        manager = IngestionStatusManager(session)
        manager.apply(profile_id, IngestionEvent.ENQUEUED)
        manager.apply(profile_id, IngestionEvent.CLAIMED)
        manager.apply(profile_id, IngestionEvent.FAILED, "[FETCH_TIMEOUT] timed out")

        profile = session.get(CreatorProfileDB, profile_id)
        assert profile.ingestion_status == "failed"
        assert profile.last_ingestion_error == "[FETCH_TIMEOUT] timed out"

        manager.apply(profile_id, IngestionEvent.ENQUEUED)
        manager.apply(profile_id, IngestionEvent.CLAIMED)
        manager.apply(profile_id, IngestionEvent.SUCCEEDED)
        assert profile.last_ingestion_error is None

    def test_failure_default_message(self, session: Session, profile_id: str) -> None:
        """Test the default error message."""
        manager = IngestionStatusManager(session)
        manager.apply(profile_id, IngestionEvent.ENQUEUED)
        manager.apply(profile_id, IngestionEvent.FAILED)
        assert session.get(CreatorProfileDB, profile_id).last_ingestion_error == "Ingestion failed"

    def test_invalid_transition_leaves_status(self, session: Session, profile_id: str) -> None:
        """Test that a rejected event does not change the profile."""
        manager = IngestionStatusManager(session)
        with pytest.raises(InvalidStatusTransition):
            manager.apply(profile_id, IngestionEvent.SUCCEEDED)
        assert manager.current(profile_id) == IngestionStatus.IDLE

    def test_apply_if_allowed(self, session: Session, profile_id: str) -> None:
        """Test that disallowed events are ignored."""
        manager = IngestionStatusManager(session)
        assert manager.apply_if_allowed(profile_id, IngestionEvent.FAILED) is None
        assert manager.current(profile_id) == IngestionStatus.IDLE

    def test_claim_from_idle_passes_through_pending(self, session: Session, profile_id: str) -> None:
        """Test claiming a follow-up job for an idle profile."""
        manager = IngestionStatusManager(session)
        assert manager.claim(profile_id) == IngestionStatus.PROCESSING

    def test_claim_from_pending(self, session: Session, profile_id: str) -> None:
        """Test the ordinary claim."""
        manager = IngestionStatusManager(session)
        manager.apply(profile_id, IngestionEvent.ENQUEUED)
        assert manager.claim(profile_id) == IngestionStatus.PROCESSING

    def test_unknown_profile(self, session: Session) -> None:
        """Test that a missing profile raises ValueError."""
        with pytest.raises(ValueError):
            IngestionStatusManager(session).current("00000000-0000-0000-0000-000000000000")
