"""
deltasearch operator CLI.

Commands:
    rebuild        Full (core) rebuild of all or one index
    delta          Delta rebuild of all or one index
    work           Continuous build-job worker
    poll           Threshold poller for datetime-strategy indexes
    status         Segment, backlog and queue overview
    migrate        Add delta marker columns to existing tables
    create-tables  Create the job and tombstone tables

Dependencies: typer, rich, deltasearch.application
System role: Operator entry point
"""

import asyncio
import signal
from datetime import timedelta

import typer
from rich.console import Console
from rich.table import Table

from deltasearch.application.services import IndexingService
from deltasearch.boundary.db.models.job_model import TriggerReason
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.configs import get_settings
from deltasearch.core.exceptions import DeltaSearchException
from deltasearch.core.indexing.reports import BuildReport
from deltasearch.observability import configure_logging

app = typer.Typer(
    name="deltasearch",
    help="deltasearch - delta indexing for relational full-text search",
    add_completion=False,
)

console = Console()


def get_service() -> IndexingService:
    """Build the indexing service from settings with logging configured."""
    settings = get_settings()
    configure_logging(settings.log_level)
    return IndexingService.from_settings(settings)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(code=1)


def _print_report(report: BuildReport) -> None:
    console.print(
        f"[green]{report.index_name}[/green] {report.kind.value}: "
        f"{report.documents} documents, {report.deleted} deleted, "
        f"{report.cleared} cleared ({report.duration_ms:.1f} ms)"
    )
    if report.delta is not None:
        _print_report(report.delta)


def _run_builds(
    service: IndexingService,
    target: SegmentKind,
    index: str | None,
    queue: bool,
    verbose: bool,
) -> None:
    if index is not None:
        definition = service.registry.get(index)
        names = [definition.name]
    else:
        names = [
            d.name
            for d in service.registry.definitions()
            if target == SegmentKind.CORE or d.tracks_changes
        ]
    if not names:
        console.print("[yellow]No indexes registered[/yellow]")
        return

    async def runner() -> None:
        for name in names:
            if queue:
                job, created = await service.enqueue(name, target, TriggerReason.MANUAL)
                state = "queued" if created else "already queued"
                console.print(f"[cyan]{name}[/cyan] {target.value} job {job.id} {state}")
            elif target == SegmentKind.CORE:
                _print_report(await service.rebuild_core(name, verbose=verbose))
            else:
                _print_report(await service.build_delta(name, verbose=verbose))

    asyncio.run(runner())


@app.command()
def rebuild(
    index: str | None = typer.Option(None, "--index", "-i", help="Only this index"),
    queue: bool = typer.Option(False, "--queue", "-q", help="Enqueue jobs instead of building inline"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log build reports at INFO"),
):
    """Rebuild core segments (and re-derive deltas)."""
    try:
        _run_builds(get_service(), SegmentKind.CORE, index, queue, verbose)
    except DeltaSearchException as e:
        _fail(e)


@app.command()
def delta(
    index: str | None = typer.Option(None, "--index", "-i", help="Only this index"),
    queue: bool = typer.Option(False, "--queue", "-q", help="Enqueue jobs instead of building inline"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log build reports at INFO"),
):
    """Rebuild delta segments only."""
    try:
        _run_builds(get_service(), SegmentKind.DELTA, index, queue, verbose)
    except DeltaSearchException as e:
        _fail(e)


@app.command()
def work(
    once: bool = typer.Option(False, "--once", help="Drain the queue and exit"),
    worker_id: str | None = typer.Option(None, "--worker-id", help="Worker identifier"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log build reports at INFO"),
):
    """Run the build-job worker."""
    service = get_service()
    config = get_settings().worker
    worker = service.worker(
        worker_id=worker_id,
        poll_interval=config.poll_interval,
        stale_after=timedelta(seconds=config.stale_after),
        max_attempts=config.max_attempts,
        verbose=verbose,
    )

    async def runner() -> None:
        if once:
            requeued, failed = await worker.recover()
            processed = await worker.run_once()
            console.print(
                f"Processed {processed} jobs (recovered {requeued}, failed orphans {failed})"
            )
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker.stop)
        console.print(f"[bold cyan]Worker {worker.worker_id} started[/bold cyan]")
        await worker.run_forever()

    asyncio.run(runner())


@app.command()
def poll(
    once: bool = typer.Option(False, "--once", help="Poll once and exit"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log build reports at INFO"),
):
    """Run the threshold poller for datetime-strategy indexes."""
    service = get_service()
    poller = service.poller(interval=get_settings().worker.threshold_poll_interval, verbose=verbose)

    async def runner() -> None:
        if once:
            reports = await poller.poll_once()
            for report in reports:
                _print_report(report)
            console.print(f"{len(reports)} threshold builds")
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, poller.stop)
        await poller.run_forever()

    asyncio.run(runner())


@app.command()
def status():
    """Show segments, dirty backlog and job counts per index."""
    service = get_service()
    statuses = asyncio.run(service.statuses())
    if not statuses:
        console.print("[yellow]No indexes registered[/yellow]")
        return

    table = Table(title="Indexes")
    table.add_column("Index", style="cyan")
    table.add_column("Strategy")
    table.add_column("Core docs", justify="right")
    table.add_column("Delta docs", justify="right")
    table.add_column("Core built")
    table.add_column("Dirty", justify="right")
    table.add_column("Queued", justify="right")
    table.add_column("Running", justify="right")
    table.add_column("Notes")

    for item in statuses:
        if not item.enabled:
            table.add_row(item.name, "-", "-", "-", "-", "-", "-", "-", f"[red]{item.error}[/red]")
            continue
        notes = "; ".join(f"{kind}: {reason}" for kind, reason in item.segment_errors.items())
        table.add_row(
            item.name,
            item.strategy,
            str(item.core.document_count) if item.core else "-",
            str(item.delta.document_count) if item.delta else "-",
            item.core.built_at.isoformat(timespec="seconds") if item.core else "never",
            str(item.dirty_records),
            str(item.jobs.get("queued", 0)),
            str(item.jobs.get("running", 0)),
            notes,
        )
    console.print(table)


@app.command()
def migrate(
    tables: list[str] = typer.Argument(..., help="Tables to add delta columns to"),
):
    """Add delta marker columns to existing tables."""
    from deltasearch.boundary.db.connection import get_engine
    from deltasearch.boundary.db.migrations import add_delta_columns

    engine = get_engine()
    try:
        for table_name in tables:
            added = add_delta_columns(engine, table_name)
            if added:
                console.print(f"[green]{table_name}[/green]: added {', '.join(added)}")
            else:
                console.print(f"{table_name}: already migrated")
    finally:
        engine.dispose()


@app.command("create-tables")
def create_tables():
    """Create the index job and tombstone tables."""
    from deltasearch.boundary.db.connection import get_engine
    from deltasearch.boundary.db.create_tables import create_all_tables

    engine = get_engine()
    try:
        tables = create_all_tables(engine)
    finally:
        engine.dispose()
    console.print(f"[green]Tables ready:[/green] {', '.join(tables)}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
