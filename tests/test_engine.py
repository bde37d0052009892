"""Tests for database engine and transaction helpers."""

import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from jovie_ingest.db.engine import (
    get_database_url,
    get_session,
    init_db,
    reset_engine,
    session_scope,
    transaction,
)
from jovie_ingest.db.models import Base, CreatorProfileDB


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
def session_local(engine):
    """Session factory bound to the test database."""
    return sessionmaker(bind=engine)


@pytest.fixture
def global_engine(temp_db_path, monkeypatch):
    """Point the process-wide engine at a fresh database."""
    monkeypatch.setenv("DATABASE_URL", str(temp_db_path))
    reset_engine()
    init_db()
    yield
    reset_engine()


def _usernames(session_local) -> list[str]:
    session = session_local()
    try:
        return list(session.execute(select(CreatorProfileDB.username)).scalars())
    finally:
        session.close()


class TestTransaction:
    """Tests for the transaction context manager."""

    def test_commits_on_success(self, session_local) -> None:
        """Test that a clean exit commits the block's writes."""
        session = session_local()
        with transaction(session):
            session.add(CreatorProfileDB(username="committed"))
        session.close()

        assert _usernames(session_local) == ["committed"]

    def test_rolls_back_and_reraises(self, session_local) -> None:
        """Test that an exception discards the block's writes and propagates."""
        session = session_local()
        with pytest.raises(RuntimeError, match="boom"):
            with transaction(session):
                session.add(CreatorProfileDB(username="discarded"))
                session.flush()
                raise RuntimeError("boom")

        assert session.execute(select(CreatorProfileDB)).scalars().all() == []
        session.close()
        assert _usernames(session_local) == []

    def test_earlier_commits_survive_a_failed_block(self, session_local) -> None:
        """Test that only the failing unit of work is rolled back."""
        session = session_local()
        with transaction(session):
            session.add(CreatorProfileDB(username="first"))
        with pytest.raises(ValueError):
            with transaction(session):
                session.add(CreatorProfileDB(username="second"))
                raise ValueError("bad")
        session.close()

        assert _usernames(session_local) == ["first"]


class TestSessionScope:
    """Tests for the process-wide session helpers."""

    def test_session_scope_commits(self, global_engine) -> None:
        """Test that session_scope persists writes on success."""
        with session_scope() as session:
            session.add(CreatorProfileDB(username="scoped"))

        with get_session() as session:
            assert session.execute(select(CreatorProfileDB.username)).scalars().all() == ["scoped"]

    def test_session_scope_rolls_back(self, global_engine) -> None:
        """Test that session_scope discards writes when the block raises."""
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(CreatorProfileDB(username="scoped"))
                session.flush()
                raise RuntimeError("abort")

        with get_session() as session:
            assert session.execute(select(CreatorProfileDB)).scalars().all() == []


class TestDatabaseUrl:
    """Tests for database URL resolution."""

    def test_explicit_path(self, temp_db_path, monkeypatch) -> None:
        """Test that an explicit path wins over the environment."""
        monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://localhost/jovie")
        assert get_database_url(temp_db_path) == f"sqlite:///{temp_db_path}"

    def test_env_url_passthrough(self, monkeypatch) -> None:
        """Test that a full URL in DATABASE_URL is used as-is."""
        monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://localhost/jovie")
        assert get_database_url() == "postgresql+psycopg://localhost/jovie"

    def test_env_file_path(self, temp_db_path, monkeypatch) -> None:
        """Test that a bare path in DATABASE_URL becomes a SQLite URL."""
        nested = temp_db_path.parent / "nested" / "jovie.db"
        monkeypatch.setenv("DATABASE_URL", str(nested))

        assert get_database_url() == f"sqlite:///{nested}"
        assert nested.parent.is_dir()
