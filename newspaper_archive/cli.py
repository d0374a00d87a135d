"""Command line interface for the newspaper archive."""

import asyncio
import functools
import sys
from typing import Optional

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .core.exceptions import ArchiveError
from .core.http_client import close_http_client
from .database import close_db_engine, init_db
from .services.credential_store import DatabaseCredentialStore
from .services.extraction_service import ExtractionService, get_extraction_service
from .services.issue_service import get_issue_service
from .utils.logging_config import setup_logging


console = Console()

STATUS_STYLES = {
    "pending": "dim",
    "processing": "yellow",
    "completed": "green",
    "failed": "red",
}


def async_command(f):
    """Decorator to run async CLI commands."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        async def _run():
            try:
                return await f(*args, **kwargs)
            finally:
                await close_http_client()
                await close_db_engine()
        return asyncio.run(_run())
    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def cli(log_level: Optional[str]):
    """Church newspaper archive - scrape issues and extract articles."""
    setup_logging(level=log_level)


@cli.command('init-db')
@async_command
async def init_db_command():
    """Create database tables."""
    try:
        await init_db()
        console.print("[green]✅ Database initialized[/green]")
    except RuntimeError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


@cli.command('add-issue')
@click.argument('year', type=int)
@click.argument('month', type=click.IntRange(1, 12))
@click.argument('board_id', type=int)
@click.argument('url')
@click.option('--title', default=None, help='Issue title (defaults to "<year>년 <month>월호")')
@async_command
async def add_issue(year: int, month: int, board_id: int, url: str, title: Optional[str]):
    """Register or refresh the issue for YEAR and MONTH."""
    try:
        issue = await get_issue_service().register_issue(year, month, board_id, url, title=title)
    except Exception as e:
        console.print(f"[red]❌ Failed to register issue: {e}[/red]")
        sys.exit(1)

    console.print(f"[green]✅ Issue {issue['id']} ({issue['title']}) registered "
                  f"with {issue['image_count']} pages[/green]")


@cli.command()
@click.option('--year', '-y', type=int, default=None, help='Only show issues of this year')
@async_command
async def issues(year: Optional[int]):
    """List issues, newest first."""
    items = await get_issue_service().list_issues(year=year)

    if not items:
        console.print("[yellow]No issues registered.[/yellow]")
        return

    table = Table(title="Newspaper Issues")
    table.add_column("ID", style="cyan")
    table.add_column("Issue", style="bold")
    table.add_column("Title")
    table.add_column("Pages", justify="right")
    table.add_column("Status")

    for item in items:
        style = STATUS_STYLES.get(item['status'], "white")
        table.add_row(
            str(item['id']),
            f"{item['year']}-{item['month']:02d}",
            item['title'] or "-",
            str(item['image_count'] or 0),
            f"[{style}]{item['status']}[/{style}]"
        )

    console.print(table)


async def _follow_run(service: ExtractionService, issue_id: int, job_id: int, quiet: bool) -> None:
    task = service.registry.get(job_id)
    if task is None:
        return

    if quiet:
        await service.wait_for_job(job_id)
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        bar = progress.add_task("scraping...", total=None)

        while not task.done():
            snapshot = await service.get_extraction_progress(issue_id)
            if snapshot is not None:
                progress.update(
                    bar,
                    description=f"{snapshot.status}...",
                    completed=snapshot.processed_items,
                    total=snapshot.total_items or None
                )
            await asyncio.wait({task}, timeout=1.0)


@cli.command()
@click.argument('issue_id', type=int)
@click.option('--quiet', '-q', is_flag=True, help='Do not show live progress')
@async_command
async def extract(issue_id: int, quiet: bool):
    """Run extraction for ISSUE_ID and wait for it to finish."""
    service = get_extraction_service()

    try:
        job_id = await service.start_extraction(issue_id)
    except ArchiveError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)

    console.print(f"📰 Started job {job_id} for issue {issue_id}")
    await _follow_run(service, issue_id, job_id, quiet)

    snapshot = await service.get_extraction_progress(issue_id)
    if snapshot is None or snapshot.status != "completed":
        message = snapshot.error_message if snapshot else "job disappeared"
        console.print(f"[red]❌ Extraction failed: {message}[/red]")
        sys.exit(1)

    console.print(f"[green]✅ Extraction completed: {snapshot.processed_items} pages processed[/green]")


@cli.command()
@click.argument('issue_id', type=int)
@async_command
async def progress(issue_id: int):
    """Show progress of the latest extraction job of ISSUE_ID."""
    snapshot = await get_extraction_service().get_extraction_progress(issue_id)

    if snapshot is None:
        console.print(f"[yellow]No extraction job for issue {issue_id}.[/yellow]")
        return

    table = Table()
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    for field, value in snapshot.to_dict().items():
        table.add_row(field, "-" if value is None else str(value))

    console.print(table)


@cli.command('set-key')
@click.argument('provider', type=click.Choice(['openai', 'gemini', 'anthropic']))
@click.argument('api_key')
@click.option('--inactive', is_flag=True, help='Store the key but keep it disabled')
@async_command
async def set_key(provider: str, api_key: str, inactive: bool):
    """Store an AI provider API key."""
    await DatabaseCredentialStore().set_credential(provider, api_key, is_active=not inactive)
    state = "inactive" if inactive else "active"
    console.print(f"[green]✅ Stored {state} key for {provider}[/green]")


@cli.command('reset-processing')
@click.option('--year', '-y', type=int, default=None, help='Only reset issues of this year')
@async_command
async def reset_processing(year: Optional[int]):
    """Put issues stuck in processing back to pending."""
    count = await get_issue_service().reset_processing(year=year)
    console.print(f"🔄 Reset {count} issues to pending")


@cli.command()
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=8000, type=int, help='Bind port')
@click.option('--reload', is_flag=True, help='Reload on code changes')
def serve(host: str, port: int, reload: bool):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("newspaper_archive.main:app", host=host, port=port, reload=reload)


if __name__ == '__main__':
    cli()
