"""FastAPI application factory for the Jovie ingestion admin API."""

from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from jovie_ingest.db.engine import init_db

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Jovie Ingest",
        description="Admin API for creator link ingestion",
        version="0.1.0",
    )

    # Initialize database tables
    init_db()

    # Include routers (import here to avoid circular imports)
    from jovie_ingest.web.routes import admin

    app.include_router(admin.router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


# Application instance
app = create_app()
