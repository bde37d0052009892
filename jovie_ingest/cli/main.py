"""Jovie link ingestion CLI using Typer."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from jovie_ingest.cli.ingest import ingest_app
from jovie_ingest.cli.profiles import profiles_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="jovie-ingest",
    help="Jovie link ingestion - discover creator links from their public profiles",
    add_completion=False,
)
app.add_typer(ingest_app, name="ingest")
app.add_typer(profiles_app, name="profiles")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from jovie_ingest.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def migrate() -> None:
    """Apply database migrations."""
    from jovie_ingest.db.engine import run_migrations

    typer.echo("Running migrations...")
    try:
        run_migrations()
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo("Database is up to date.")


@app.command()
def worker(
    local: bool = typer.Option(
        False, "--local", help="Poll the database in-process instead of running an arq worker"
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c", help="Concurrent jobs (local mode)"
    ),
) -> None:
    """
    Start the ingestion worker.

    Examples:
        jovie-ingest worker
        jovie-ingest worker --local --concurrency=2
    """
    if local:
        from jovie_ingest.ingestion.orchestrator import IngestionOrchestrator

        typer.echo("Starting local ingestion worker (Ctrl+C to stop)")
        try:
            asyncio.run(IngestionOrchestrator().run_worker(concurrency=concurrency))
        except KeyboardInterrupt:
            typer.echo("Worker stopped")
        return

    from arq import run_worker

    from jovie_ingest.ingestion.jobs import WorkerSettings

    typer.echo("Starting arq ingestion worker (Ctrl+C to stop)")
    try:
        run_worker(WorkerSettings)
    except Exception as e:
        typer.echo(f"Error: Worker failed: {e}", err=True)
        typer.echo("Make sure Redis is running: docker-compose up -d redis", err=True)
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the admin API server."""
    import uvicorn

    typer.echo(f"Starting admin API on http://{host}:{port}")
    uvicorn.run(
        "jovie_ingest.web.app:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from jovie_ingest.db.engine import get_database_url
    from jovie_ingest.ingestion.config import get_default_config

    typer.echo("Jovie Ingest Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    config = get_default_config()
    typer.echo(f"  Ingestion config: {config.config_path or 'defaults'}")
    typer.echo(f"  Max depth: {config.global_config.max_depth}")
    typer.echo(f"  Database: {get_database_url()}")


@app.command()
def version() -> None:
    """Show the version."""
    typer.echo("jovie-ingest v0.1.0")


if __name__ == "__main__":
    app()
