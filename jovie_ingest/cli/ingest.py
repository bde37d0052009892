"""
Ingestion CLI Commands
======================

CLI commands for enqueueing link ingestion and managing the job queue.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from jovie_ingest.core.enums import JobStatus
from jovie_ingest.core.errors import DuplicateJobError, InvalidJobState
from jovie_ingest.db.engine import get_session, transaction
from jovie_ingest.db.repositories import CreatorProfileRepository
from jovie_ingest.ingestion.jobs import UnsupportedUrlError, run_ingestion_sync, trigger_ingestion
from jovie_ingest.ingestion.normalizer import NormalizedLink, normalize
from jovie_ingest.ingestion.platforms import get_default_platform_registry
from jovie_ingest.ingestion.queue import JobQueue

console = Console()
ingest_app = typer.Typer(help="Link ingestion commands")
jobs_app = typer.Typer(help="Job queue commands")

ingest_app.add_typer(jobs_app, name="jobs")

STATUS_COLORS = {
    "pending": "yellow",
    "processing": "blue",
    "idle": "green",
    "failed": "red",
}


def _colored(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _resolve_profile_id(profile: str) -> str:
    """Resolve a profile id or username, exiting if it does not exist."""
    with get_session() as session:
        found = CreatorProfileRepository(session).resolve(profile)
    if found is None:
        rprint(f"[red]Error:[/red] Creator profile '{profile}' not found")
        raise typer.Exit(1)
    return str(found.id)


@ingest_app.command("run")
def run_ingestion(
    profile: str = typer.Option(..., "--profile", "-p", help="Creator profile id or username"),
    url: str = typer.Option(..., "--url", "-u", help="Profile URL to ingest"),
    sync: bool = typer.Option(False, "--sync", help="Process the queue in-process (blocking)"),
) -> None:
    """
    Ingest links from a profile URL.

    Examples:
        jovie-ingest ingest run --profile=testartist --url=linktr.ee/testartist --sync
        jovie-ingest ingest run -p testartist -u https://beacons.ai/testartist
    """
    profile_id = _resolve_profile_id(profile)

    if sync:
        rprint("\n[dim]Running synchronously...[/dim]\n")
        try:
            with console.status("[bold blue]Ingesting...[/bold blue]"):
                results = asyncio.run(run_ingestion_sync(profile_id, url))
        except UnsupportedUrlError as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)

        if not results:
            rprint("[yellow]No runnable jobs (the profile may already be processing)[/yellow]")
            return
        for result in results:
            _display_job_result(result.to_dict())
        if any(not r.succeeded for r in results):
            raise typer.Exit(1)
        return

    rprint("\n[dim]Enqueueing job for async processing...[/dim]")
    try:
        queued = asyncio.run(trigger_ingestion(profile_id, url))
    except UnsupportedUrlError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
        rprint("\nThe job may be queued in the database; make sure Redis is running:")
        rprint("  docker-compose up -d redis")
        raise typer.Exit(1)

    if queued["created"]:
        rprint("\n[green]Job enqueued successfully![/green]")
    else:
        rprint("\n[yellow]An equivalent job is already queued[/yellow]")
    rprint(f"Job ID: [bold]{queued['job_id']}[/bold]")
    rprint("\nCheck status with:")
    rprint(f"  jovie-ingest ingest jobs show {queued['job_id']}")


@ingest_app.command("normalize")
def normalize_url(
    url: str = typer.Argument(..., help="URL to normalize"),
) -> None:
    """
    Show how a URL normalizes to a platform identity.

    Examples:
        jovie-ingest ingest normalize "instagram,com/TestArtist/?igshid=abc"
    """
    result = normalize(url)
    if not isinstance(result, NormalizedLink):
        rprint(f"[yellow]Unrecognized:[/yellow] {result.reason}")
        raise typer.Exit(1)

    rprint(f"\n[bold]Platform:[/bold] {result.platform_id}")
    rprint(f"  Canonical id: {result.canonical_id}")
    rprint(f"  URL: {result.url}")
    if result.typo_corrected:
        rprint(f"  [dim]Host corrected to {result.host}[/dim]")


@ingest_app.command("platforms")
def list_platforms(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Filter by category"),
) -> None:
    """
    List known platforms.

    Examples:
        jovie-ingest ingest platforms
        jovie-ingest ingest platforms --category=dsp
    """
    registry = get_default_platform_registry()
    try:
        platforms = registry.by_category(category) if category else registry.all()
    except ValueError:
        rprint(f"[red]Error:[/red] Unknown category '{category}'")
        raise typer.Exit(1)

    table = Table(title="Platforms")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Domains")
    table.add_column("Ingest Job")

    for platform in platforms:
        table.add_row(
            platform.platform_id,
            platform.name,
            platform.category.value,
            ", ".join(platform.domains),
            platform.job_type.value if platform.job_type else "[dim]-[/dim]",
        )

    console.print(table)


# Jobs subcommands


@jobs_app.command("list")
def list_jobs(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Filter by profile id or username"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum jobs to show"),
) -> None:
    """
    List ingestion jobs, newest first.

    Examples:
        jovie-ingest ingest jobs list
        jovie-ingest ingest jobs list --status=failed
    """
    if status is not None and status not in {s.value for s in JobStatus}:
        rprint(f"[red]Error:[/red] Unknown status '{status}'")
        raise typer.Exit(1)
    profile_id = _resolve_profile_id(profile) if profile else None

    with get_session() as session:
        jobs = JobQueue(session).list_jobs(status=status, creator_profile_id=profile_id, limit=limit)

    if not jobs:
        rprint("[yellow]No jobs found[/yellow]")
        return

    table = Table(title="Ingestion Jobs")
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Depth")
    table.add_column("Attempts")
    table.add_column("Source")
    table.add_column("Created")

    for job in jobs:
        table.add_row(
            str(job.id)[:8],
            job.job_type.value,
            _colored(job.status.value),
            str(job.depth),
            str(job.attempts),
            job.payload.get("source_url", ""),
            job.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@jobs_app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID"),
) -> None:
    """
    Show details of one job.

    Examples:
        jovie-ingest ingest jobs show 3f2a...
    """
    with get_session() as session:
        job = JobQueue(session).get(job_id)

    if job is None:
        rprint(f"[red]Error:[/red] Job '{job_id}' not found")
        raise typer.Exit(1)

    rprint(f"\n[bold]Job: {job.id}[/bold]")
    rprint(f"  Type: {job.job_type.value}")
    rprint(f"  Status: {_colored(job.status.value)}")
    rprint(f"  Profile: {job.creator_profile_id}")
    rprint(f"  Source: {job.payload.get('source_url', 'N/A')}")
    rprint(f"  Dedup key: {job.dedup_key}")
    rprint(f"  Depth: {job.depth}  Priority: {job.priority}  Attempts: {job.attempts}")
    rprint(f"  Created: {job.created_at.isoformat()}")
    if job.started_at:
        rprint(f"  Started: {job.started_at.isoformat()}")
    if job.completed_at:
        rprint(f"  Completed: {job.completed_at.isoformat()}")
    if job.error_message:
        rprint(f"\n[bold red]Error:[/bold red] {job.error_message}")


@jobs_app.command("retry")
def retry_job(
    job_id: str = typer.Argument(..., help="Job ID"),
) -> None:
    """
    Re-queue a failed job.

    Examples:
        jovie-ingest ingest jobs retry 3f2a...
    """
    try:
        with get_session() as session, transaction(session):
            job = JobQueue(session).retry(job_id)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except (InvalidJobState, DuplicateJobError) as e:
        rprint(f"[yellow]Cannot retry:[/yellow] {e}")
        raise typer.Exit(1)

    rprint(f"[green]Job {job.id} re-queued[/green]")


@jobs_app.command("sweep")
def sweep_jobs() -> None:
    """
    Fail jobs stuck in processing past the staleness threshold.

    Examples:
        jovie-ingest ingest jobs sweep
    """
    with get_session() as session, transaction(session):
        swept = JobQueue(session).sweep_stale()

    if not swept:
        rprint("[green]No stale jobs[/green]")
        return
    rprint(f"[yellow]Failed {len(swept)} stale jobs:[/yellow]")
    for job_id in swept:
        rprint(f"  • {job_id}")


def _display_job_result(result: dict) -> None:
    """Display a job run result."""
    status = result.get("status", "unknown")

    rprint(f"\n[bold]Job {result.get('job_id', 'N/A')}[/bold] ({result.get('job_type', 'N/A')})")
    rprint(f"  Status: {_colored(status)}")
    if result.get("duration_seconds") is not None:
        rprint(f"  Duration: {result['duration_seconds']:.1f}s")

    rprint(f"  Links extracted: {result.get('extracted_links', 0)}")
    rprint(f"  Added: {result.get('added', 0)}")
    rprint(f"  Updated: {result.get('updated', 0)}")
    rprint(f"  Skipped: {result.get('skipped', 0)}")

    follow_ups = result.get("follow_up_job_ids", [])
    if follow_ups:
        rprint(f"  Follow-up jobs: {len(follow_ups)}")

    if result.get("error"):
        rprint(f"  [bold red]Error:[/bold red] {result['error']}")
