"""Creator profile CLI commands."""

from __future__ import annotations

from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import IntegrityError

from jovie_ingest.core.schema import CreatorProfile
from jovie_ingest.db.engine import get_session, transaction
from jovie_ingest.db.repositories import CreatorProfileRepository, SocialLinkRepository
from jovie_ingest.ingestion.queue import JobQueue

console = Console()
profiles_app = typer.Typer(help="Creator profile commands")


@profiles_app.command("create")
def create_profile(
    username: str = typer.Argument(..., help="Profile username"),
    display_name: Optional[str] = typer.Option(None, "--display-name", "-n", help="Display name"),
    lock_display_name: bool = typer.Option(
        False, "--lock-display-name", help="Never overwrite the display name from ingestion"
    ),
) -> None:
    """
    Create a creator profile.

    Examples:
        jovie-ingest profiles create testartist
    """
    try:
        profile = CreatorProfile(
            username=username,
            display_name=display_name,
            display_name_locked=lock_display_name,
        )
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    try:
        with get_session() as session, transaction(session):
            created = CreatorProfileRepository(session).create(profile)
    except IntegrityError:
        rprint(f"[red]Error:[/red] Username '{profile.username}' is taken")
        raise typer.Exit(1)

    rprint(f"[green]Created profile[/green] {created.username}")
    rprint(f"ID: [bold]{created.id}[/bold]")


@profiles_app.command("show")
def show_profile(
    profile: str = typer.Argument(..., help="Profile id or username"),
) -> None:
    """
    Show a profile's ingestion status and links.

    Examples:
        jovie-ingest profiles show testartist
    """
    with get_session() as session:
        found = CreatorProfileRepository(session).resolve(profile)
        if found is None:
            rprint(f"[red]Error:[/red] Creator profile '{profile}' not found")
            raise typer.Exit(1)
        links = SocialLinkRepository(session).list_for_profile(found.id)
        jobs = JobQueue(session).list_jobs(creator_profile_id=found.id, limit=10)

    rprint(f"\n[bold]Profile: {found.username}[/bold] ({found.id})")
    rprint(f"  Display name: {found.display_name or '-'}")
    rprint(f"  Avatar: {found.avatar_url or '-'}")
    rprint(f"  Ingestion status: {found.ingestion_status.value}")
    if found.last_ingestion_error:
        rprint(f"  [red]Last error:[/red] {found.last_ingestion_error}")

    if links:
        table = Table(title="Social Links")
        table.add_column("Platform", style="bold")
        table.add_column("ID")
        table.add_column("URL")
        table.add_column("Source")
        table.add_column("Confidence")
        for link in links:
            table.add_row(
                link.platform_id,
                link.canonical_id,
                link.url,
                link.source.value,
                f"{link.confidence:.2f}",
            )
        console.print(table)
    else:
        rprint("\n[dim]No links yet[/dim]")

    if jobs:
        rprint("\n[bold]Recent jobs:[/bold]")
        for job in jobs:
            rprint(f"  • {job.id} {job.job_type.value} {job.status.value} (depth {job.depth})")
