"""Tests for the admin web routes."""

import tempfile
from contextlib import contextmanager
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from jovie_ingest.core.enums import IngestionEvent, JobOutcome
from jovie_ingest.core.schema import CreatorProfile
from jovie_ingest.db.models import Base
from jovie_ingest.db.repositories import CreatorProfileRepository
from jovie_ingest.ingestion.config import IngestionConfig
from jovie_ingest.ingestion.queue import JobQueue


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def test_engine(temp_db_path):
    """Create a test database engine."""
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def test_session(test_engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=test_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def woken(monkeypatch) -> list[bool]:
    """Record worker wake-ups instead of talking to Redis."""
    calls: list[bool] = []

    async def fake_notify_worker() -> None:
        calls.append(True)

    monkeypatch.setattr("jovie_ingest.web.routes.admin.notify_worker", fake_notify_worker)
    return calls


@pytest.fixture
def client(test_engine, temp_db_path, woken, monkeypatch):
    """Create a test client with mocked database."""
    from jovie_ingest.db.engine import reset_engine

    # Module import creates an app; keep it off the real database
    monkeypatch.setenv("DATABASE_URL", str(temp_db_path))
    reset_engine()

    TestSessionLocal = sessionmaker(bind=test_engine)

    @contextmanager
    def mock_get_session():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr("jovie_ingest.web.routes.admin.get_session", mock_get_session)
    monkeypatch.setattr("jovie_ingest.web.app.init_db", lambda: None)

    from jovie_ingest.web.app import create_app

    app = create_app()
    yield TestClient(app)
    reset_engine()


@pytest.fixture
def profile_id(test_session) -> str:
    """Create a creator profile."""
    profile = CreatorProfileRepository(test_session).create(CreatorProfile(username="testartist"))
    test_session.commit()
    return str(profile.id)


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client: TestClient) -> None:
        """Test the health check."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestTriggerIngest:
    """Tests for POST /admin/creator-ingest."""

    def test_enqueues_job(self, client: TestClient, profile_id: str, woken: list[bool]) -> None:
        """Test that a supported URL creates a pending job and wakes a worker."""
        response = client.post(
            "/admin/creator-ingest",
            json={"creator_profile_id": profile_id, "url": "https://linktr.ee/testartist"},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"
        assert body["job_id"]
        assert woken == [True]

    def test_duplicate_returns_existing_job(self, client: TestClient, profile_id: str) -> None:
        """Test that a repeated request returns the active job."""
        payload = {"creator_profile_id": profile_id, "url": "https://linktr.ee/testartist"}
        first = client.post("/admin/creator-ingest", json=payload).json()

        response = client.post("/admin/creator-ingest", json=payload)

        assert response.status_code == 200
        assert response.json() == {"job_id": first["job_id"], "status": "duplicate"}

    def test_unknown_profile(self, client: TestClient) -> None:
        """Test a missing profile."""
        response = client.post(
            "/admin/creator-ingest",
            json={"creator_profile_id": str(uuid4()), "url": "https://linktr.ee/testartist"},
        )
        assert response.status_code == 404

    def test_unsupported_url(self, client: TestClient, profile_id: str, woken: list[bool]) -> None:
        """Test URLs without a strategy."""
        response = client.post(
            "/admin/creator-ingest",
            json={"creator_profile_id": profile_id, "url": "badurl.notadomain"},
        )
        assert response.status_code == 400
        assert woken == []

    def test_missing_fields(self, client: TestClient) -> None:
        """Test request validation."""
        response = client.post("/admin/creator-ingest", json={"url": "https://linktr.ee/a"})
        assert response.status_code == 422

    def test_worker_notification_failure_is_not_fatal(
        self, client: TestClient, profile_id: str, monkeypatch
    ) -> None:
        """Test that an unreachable Redis does not fail the request."""

        async def broken_notify() -> None:
            raise ConnectionError("redis down")

        monkeypatch.setattr("jovie_ingest.web.routes.admin.notify_worker", broken_notify)

        response = client.post(
            "/admin/creator-ingest",
            json={"creator_profile_id": profile_id, "url": "https://beacons.ai/testartist"},
        )
        assert response.status_code == 202


class TestIngestStatus:
    """Tests for GET /admin/creator-ingest/{profile_id}."""

    def test_status_with_jobs(self, client: TestClient, profile_id: str) -> None:
        """Test the status view after enqueueing."""
        client.post(
            "/admin/creator-ingest",
            json={"creator_profile_id": profile_id, "url": "https://linktr.ee/testartist"},
        )

        response = client.get(f"/admin/creator-ingest/{profile_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "testartist"
        assert body["ingestion_status"] == "pending"
        assert body["last_ingestion_error"] is None
        assert len(body["jobs"]) == 1
        assert body["jobs"][0]["job_type"] == "import_linktree"
        assert body["social_links"] == []

    def test_unknown_profile(self, client: TestClient) -> None:
        """Test a missing profile."""
        assert client.get(f"/admin/creator-ingest/{uuid4()}").status_code == 404


class TestRetryJob:
    """Tests for POST /admin/creator-ingest/jobs/{job_id}/retry."""

    def test_retry_failed_job(self, client: TestClient, test_session, profile_id: str) -> None:
        """Test re-queuing a failed job."""
        queue = JobQueue(test_session, config=IngestionConfig())
        job_id = queue.enqueue_for_url(profile_id, "https://linktr.ee/testartist")
        queue.dequeue_next()
        queue.ack(job_id, JobOutcome.FAILURE, "[NOT_FOUND] gone")
        queue.status.apply(profile_id, IngestionEvent.FAILED, "[NOT_FOUND] gone")
        test_session.commit()

        response = client.post(f"/admin/creator-ingest/jobs/{job_id}/retry")

        assert response.status_code == 202
        assert response.json() == {"job_id": job_id, "status": "pending"}

    def test_retry_pending_job_conflicts(self, client: TestClient, test_session, profile_id: str) -> None:
        """Test that only failed jobs can be retried."""
        job_id = JobQueue(test_session, config=IngestionConfig()).enqueue_for_url(
            profile_id, "https://linktr.ee/testartist"
        )
        test_session.commit()

        response = client.post(f"/admin/creator-ingest/jobs/{job_id}/retry")
        assert response.status_code == 409

    def test_retry_unknown_job(self, client: TestClient) -> None:
        """Test retrying a missing job."""
        response = client.post(f"/admin/creator-ingest/jobs/{uuid4()}/retry")
        assert response.status_code == 404
