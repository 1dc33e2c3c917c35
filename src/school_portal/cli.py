"""School Portal command line.

Commands:
    init-db               Create or reset the database
    status                Show tables, row counts and a school overview
    expire-notifications  Run the notification expiry job once
    expire-invites        Run the invite expiry job once
    run-scheduler         Run the daily maintenance jobs until interrupted
"""

import signal
import threading
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from school_portal import __version__
from school_portal.cache import NotificationCache
from school_portal.config import Settings
from school_portal.database import Database
from school_portal.repositories import ReportRepository
from school_portal.scheduler import INVITE_EXPIRY, NOTIFICATION_EXPIRY, DailyScheduler, MaintenanceJob

console = Console()


def _database(ctx: click.Context) -> Database:
    settings: Settings = ctx.obj["settings"]
    return Database.from_settings(settings)


def _notification_job(db: Database, settings: Settings, invalidate_cache: bool) -> MaintenanceJob:
    on_success = None
    if invalidate_cache:
        cache = NotificationCache.from_settings(settings)

        def on_success(count: int) -> None:
            if count:
                cache.invalidate_pattern("id")
                cache.invalidate_pattern("list")

    return MaintenanceJob("notification-expiry", NOTIFICATION_EXPIRY, db, on_success=on_success)


def _invite_job(db: Database) -> MaintenanceJob:
    return MaintenanceJob("invite-expiry", INVITE_EXPIRY, db)


@click.group()
@click.version_option(version=__version__, prog_name="school-portal")
@click.option("--db", "db_path", type=click.Path(path_type=Path), help="Database file (overrides DATABASE_PATH)")
@click.pass_context
def cli(ctx: click.Context, db_path: Optional[Path]):
    """School Portal backend - database setup and maintenance jobs."""
    settings = Settings.from_env()
    if db_path is not None:
        settings.database_path = db_path
    ctx.obj = {"settings": settings}


@cli.command("init-db")
@click.option("--force", is_flag=True, help="Force reset existing database")
@click.pass_context
def init_db(ctx: click.Context, force: bool):
    """Initialize or reset the database."""
    settings: Settings = ctx.obj["settings"]
    if not force and settings.database_path.exists():
        if not click.confirm("Database exists. Reset it?", default=False):
            console.print("[yellow]Aborted.[/yellow]")
            return
        force = True

    console.print("[blue]Initializing database...[/blue]")
    db = _database(ctx)
    try:
        db.initialize(force=force)
        info = db.verify()
    finally:
        db.close()

    console.print("[green]✓ Database initialized[/green]")
    console.print(f"  Tables: {', '.join(info.get('tables', []))}")
    console.print(f"  Views: {len(info.get('views', []))} views created")


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show database status and school overview."""
    settings: Settings = ctx.obj["settings"]
    if not settings.database_path.exists():
        console.print(f"[red]Database not found: {settings.database_path}[/red]")
        console.print("Run [bold]school-portal init-db[/bold] first.")
        ctx.exit(1)

    db = _database(ctx)
    try:
        info = db.verify()
        overview = ReportRepository(db).school_overview()
    finally:
        db.close()

    console.print(Panel("[bold]Database Status[/bold]"))
    table = Table(show_header=False)
    table.add_column("Table", style="cyan")
    table.add_column("Rows")
    for name, count in info.get("row_counts", {}).items():
        table.add_row(name, str(count))
    console.print(table)

    console.print("\n[bold]Overview[/bold]")
    console.print(f"  • Active students: {overview.active_students}")
    console.print(f"  • Active teachers: {overview.active_teachers}")
    console.print(f"  • Active classes: {overview.active_classes}")
    console.print(f"  • Active notifications: {overview.active_notifications}")
    open_cases = ", ".join(f"{severity} {count}" for severity, count in overview.open_indiscipline.items())
    style = "red" if overview.open_indiscipline.get("severe") else "green"
    console.print(f"  • Open indiscipline: [{style}]{open_cases}[/{style}]")


def _run_job(ctx: click.Context, job: MaintenanceJob, what: str) -> None:
    try:
        completed = job.run_once()
    finally:
        job.db.close()

    if not completed:
        console.print(f"[red]✗ {job.name} did not complete (see logs)[/red]")
        ctx.exit(1)
    console.print(f"[green]✓ {job.last_count} {what} expired[/green]")


@cli.command("expire-notifications")
@click.option("--invalidate-cache/--no-invalidate-cache", default=True, help="Evict cached notifications afterwards")
@click.pass_context
def expire_notifications(ctx: click.Context, invalidate_cache: bool):
    """Expire notifications whose expiry time has passed."""
    db = _database(ctx)
    _run_job(ctx, _notification_job(db, ctx.obj["settings"], invalidate_cache), "notifications")


@cli.command("expire-invites")
@click.pass_context
def expire_invites(ctx: click.Context):
    """Expire pending invites past their expiry time."""
    _run_job(ctx, _invite_job(_database(ctx)), "invites")


@cli.command("run-scheduler")
@click.option("--invalidate-cache/--no-invalidate-cache", default=True, help="Evict cached notifications after expiry")
@click.pass_context
def run_scheduler(ctx: click.Context, invalidate_cache: bool):
    """Run the daily maintenance jobs until interrupted."""
    settings: Settings = ctx.obj["settings"]
    db = _database(ctx)
    scheduler = DailyScheduler(settings.schedule_hour, settings.schedule_minute)
    scheduler.register(_notification_job(db, settings, invalidate_cache))
    scheduler.register(_invite_job(db))

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    console.print(f"[blue]Next run at {scheduler.next_run():%Y-%m-%d %H:%M} UTC. Press Ctrl+C to stop.[/blue]")
    try:
        scheduler.run_forever(stop)
    except KeyboardInterrupt:
        console.print("\n[yellow]Scheduler stopped.[/yellow]")
    finally:
        db.close()


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
