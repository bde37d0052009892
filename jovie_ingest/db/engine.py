"""
Database engine and unit-of-work helpers.

The queue, merge engine and status manager only flush; a caller owns the
transaction around them:

    with get_session() as session, transaction(session):
        JobQueue(session).enqueue_for_url(profile_id, url)

or, when the caller has no session yet, ``with session_scope() as session``.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".jovie_ingest" / "jovie_ingest.db"

# Seconds a SQLite connection waits on another worker's write lock
SQLITE_BUSY_TIMEOUT = 30

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the database URL.

    An explicit ``db_path`` wins over ``DATABASE_URL``, which may be a full
    SQLAlchemy URL (``postgresql+psycopg://...``) or a bare SQLite file
    path. Without either the per-user default file is used. Parent
    directories of SQLite files are created.
    """
    if db_path is None and os.environ.get("DATABASE_URL"):
        url = os.environ["DATABASE_URL"]
        if "://" in url:
            return url
        db_path = url

    path = Path(db_path) if db_path is not None else DEFAULT_DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """
    Create an engine for the resolved database URL.

    SQLite connections are shared across worker threads and wait for
    competing writers instead of failing with "database is locked".
    Server databases get connection liveness checks.
    """
    url = get_database_url(db_path)
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )
    return create_engine(url, echo=echo, pool_pre_ping=True)


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker:
    """Process-wide session factory, created on first use."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(db_path))
    return _SessionLocal


def reset_engine() -> None:
    """Dispose the process-wide engine so the next use re-reads DATABASE_URL."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """Open a session that is closed, never committed, on exit."""
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """
    Run a block as one unit of work on an open session.

    Commits when the block exits normally. Any exception rolls the session
    back and propagates.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


@contextmanager
def session_scope(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """Open a session and run the block in a ``transaction``."""
    with get_session(db_path) as session, transaction(session):
        yield session


def init_db(db_path: Path | str | None = None) -> None:
    """Create all tables directly (development and tests; deployments migrate)."""
    from jovie_ingest.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))


def run_migrations(db_path: Path | str | None = None) -> None:
    """
    Upgrade the database to the latest Alembic revision.

    Raises:
        FileNotFoundError: If alembic.ini is not next to the package
    """
    alembic_ini = Path(__file__).resolve().parents[2] / "alembic.ini"
    if not alembic_ini.exists():
        raise FileNotFoundError(f"Alembic config not found: {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("sqlalchemy.url", get_database_url(db_path))
    command.upgrade(config, "head")
