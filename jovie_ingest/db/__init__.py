"""Database initialization and persistence layer."""

from jovie_ingest.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
    run_migrations,
    session_scope,
    transaction,
)
from jovie_ingest.db.models import (
    Base,
    CreatorProfileDB,
    IngestionJobDB,
    SocialLinkDB,
)
from jovie_ingest.db.repositories import (
    CreatorProfileRepository,
    SocialLinkRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    "run_migrations",
    "session_scope",
    "transaction",
    # Models
    "Base",
    "CreatorProfileDB",
    "SocialLinkDB",
    "IngestionJobDB",
    # Repositories
    "CreatorProfileRepository",
    "SocialLinkRepository",
]
