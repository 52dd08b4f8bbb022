"""
Ingestion CLI Commands
======================

Seeding, normalization, scheduling, the worker loop and queue operations.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from rich import print as rprint
from rich.table import Table

from catalog_ingest.cli.common import console, open_session, parse_json_option, print_json
from catalog_ingest.core.clock import as_utc
from catalog_ingest.core.enums import JobStatus
from catalog_ingest.ingestion.fetcher import Fetcher
from catalog_ingest.ingestion.job_queue import JobQueue
from catalog_ingest.ingestion.recovery import JobRecovery
from catalog_ingest.ingestion.registry import SourceDefinition, load_registry
from catalog_ingest.ingestion.scheduler import Scheduler
from catalog_ingest.ingestion.seed import SeedIngestor
from catalog_ingest.ingestion.sources import (
    MANUAL_SEED_SOURCE,
    OFFERS_DETAIL_SOURCE,
    OFFERS_HEAD_SOURCE,
    ensure_source,
)
from catalog_ingest.ingestion.worker import Worker
from catalog_ingest.normalization.normalizer import Normalizer

sources_app = typer.Typer(help="Ingestion source commands")
jobs_app = typer.Typer(help="Job queue commands")

BUILTIN_SOURCES = (MANUAL_SEED_SOURCE, OFFERS_HEAD_SOURCE, OFFERS_DETAIL_SOURCE)


def _all_definitions() -> dict[str, SourceDefinition]:
    """Built-in sources, replaced by configured ones with the same slug."""
    definitions = {s.slug: s for s in BUILTIN_SOURCES}
    definitions.update({s.slug: s for s in load_registry().list_sources()})
    return definitions


def seed(
    paths: list[Path] = typer.Argument(..., help="Seed files (YAML or JSON)"),
    normalize: bool = typer.Option(
        False, "--normalize", "-n", help="Normalize the seed source afterwards"
    ),
) -> None:
    """
    Ingest seed files as snapshots of the manual seed source.

    Examples:
        catalog-ingest seed data/seed/tanks.yaml
        catalog-ingest seed data/seed/*.yaml --normalize
    """
    for path in paths:
        if not path.exists():
            rprint(f"[red]Error:[/red] Seed file not found: {path}")
            raise typer.Exit(1)

    with open_session() as session:
        ingestor = SeedIngestor(session)
        for path in paths:
            summary = ingestor.ingest_path(path)
            records = summary.to_dict()["records"]
            created = sum(r["snapshotsCreated"] for r in records.values())
            rprint(f"[green]{path.name}[/green]: {created} new snapshots")
            for name, stats in records.items():
                rprint(f"  {name}: {stats['ingested']} ingested, {stats['unchanged']} unchanged")
        session.commit()

        if normalize:
            result = Normalizer(session).normalize_source(MANUAL_SEED_SOURCE.slug)
            rprint("\n[bold]Normalization:[/bold]")
            print_json(result.to_dict())


def normalize(
    source: str = typer.Option(MANUAL_SEED_SOURCE.slug, "--source", "-s", help="Source slug"),
    actor: Optional[str] = typer.Option(None, "--actor", help="User id recorded in the audit log"),
) -> None:
    """
    Normalize the latest snapshots of a source into canonical rows.

    Examples:
        catalog-ingest normalize
        catalog-ingest normalize --source manual_seed
    """
    with open_session() as session:
        with console.status("[bold blue]Normalizing...[/bold blue]"):
            summary = Normalizer(session, actor_user_id=actor).normalize_source(source)

    table = Table(title=f"Normalization: {source}")
    table.add_column("Type", style="bold")
    table.add_column("Processed", justify="right")
    table.add_column("Inserted", justify="right")
    table.add_column("Updated", justify="right")
    for name, stats in (
        ("products", summary.products),
        ("plants", summary.plants),
        ("offers", summary.offers),
    ):
        table.add_row(name, str(stats.processed), str(stats.inserted), str(stats.updated))
    console.print(table)
    rprint(f"Mappings upserted: {summary.mappings_upserted}")
    rprint(f"Summaries refreshed: {summary.summaries_refreshed}")


def schedule(
    limit_sources: Optional[int] = typer.Option(
        None, "--limit-sources", help="Maximum sources to scan"
    ),
) -> None:
    """
    Enqueue recurring jobs for scheduled sources (safe to run every minute).

    Examples:
        catalog-ingest schedule
    """
    settings = load_registry().global_config
    with open_session() as session:
        stats = Scheduler(session).run(
            limit_sources=limit_sources or settings.scheduler_limit_sources
        )
    print_json(stats.to_dict())


def worker(
    max_jobs: Optional[int] = typer.Option(None, "--max-jobs", "-m", help="Jobs to process (1-500)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the next job without claiming it"),
    worker_id: Optional[str] = typer.Option(None, "--worker-id", help="Lock owner id"),
) -> None:
    """
    Claim and run queued jobs, then exit.

    Examples:
        catalog-ingest worker --max-jobs 10
        catalog-ingest worker --dry-run
    """
    settings = load_registry().global_config
    with open_session() as session, Fetcher(user_agent=settings.user_agent) as fetcher:
        runner = Worker(
            session,
            fetcher,
            worker_id=worker_id,
            reap_after_minutes=settings.reap_running_after_minutes,
            stale_after=timedelta(hours=settings.offer_stale_after_hours),
        )
        result = runner.run(max_jobs=max_jobs or settings.worker_max_jobs, dry_run=dry_run)

    if dry_run and result.next_job is None:
        rprint("[yellow]No job is ready to run[/yellow]")
        return
    print_json(result.to_dict())
    if result.failed:
        raise typer.Exit(1)


def enqueue(
    kind: str = typer.Argument(..., help="Job kind, e.g. offers.head_refresh.bulk"),
    payload: Optional[str] = typer.Option(None, "--payload", "-p", help="JSON payload"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Idempotency key"),
    priority: int = typer.Option(0, "--priority", help="Higher runs first"),
) -> None:
    """
    Enqueue a job.

    Examples:
        catalog-ingest enqueue offers.head_refresh.bulk --payload '{"limit": 10}'
        catalog-ingest enqueue offers.detail_refresh.one -p '{"offerId": "..."}' -k manual:1
    """
    data = parse_json_option(payload, "--payload") or {}
    with open_session() as session:
        result = JobQueue(session).enqueue(kind, data, idempotency_key=key, priority=priority)

    if result.deduped:
        rprint(f"[yellow]Deduped:[/yellow] job {result.id} already exists for key {key}")
    else:
        rprint(f"[green]Enqueued[/green] job [bold]{result.id}[/bold]")


# Sources subcommands


@sources_app.command("list")
def list_sources() -> None:
    """
    List configured ingestion sources.

    Examples:
        catalog-ingest sources list
    """
    sources = _all_definitions()

    table = Table(title="Ingestion Sources")
    table.add_column("Slug", style="bold")
    table.add_column("Kind")
    table.add_column("Trust")
    table.add_column("Every (min)", justify="right")
    table.add_column("Status")

    for source in sources.values():
        status = "[green]active[/green]" if source.active else "[yellow]inactive[/yellow]"
        every = str(source.schedule_every_minutes) if source.schedule_every_minutes else "-"
        table.add_row(source.slug, source.kind, source.default_trust, every, status)

    console.print(table)


@sources_app.command("sync")
def sync_sources() -> None:
    """
    Upsert built-in and configured sources into the database.

    Configured sources overwrite built-in ones with the same slug.

    Examples:
        catalog-ingest sources sync
    """
    definitions = _all_definitions()

    with open_session() as session:
        for definition in definitions.values():
            ensure_source(session, definition, update_existing=True)
            rprint(f"  [green]synced[/green] {definition.slug}")
    rprint(f"\n{len(definitions)} sources synced")


# Jobs subcommands


@jobs_app.command("stats")
def job_stats() -> None:
    """
    Show queue counts.

    Examples:
        catalog-ingest jobs stats
    """
    with open_session() as session:
        stats = JobRecovery(session).queue_stats()

    table = Table(title="Job Queue")
    table.add_column("Status", style="bold")
    table.add_column("Jobs", justify="right")
    for status in JobStatus:
        table.add_row(status.value, str(stats.by_status.get(status.value, 0)))
    console.print(table)
    rprint(f"Due now: {stats.due_now}")
    rprint(f"Stale queued: {stats.stale_queued}")
    rprint(f"Stuck running: {stats.stuck_running}")
    if stats.oldest_queued_at:
        rprint(f"Oldest queued: {as_utc(stats.oldest_queued_at).isoformat()}")


@jobs_app.command("reap")
def reap_jobs(
    older_than: int = typer.Option(45, "--older-than", help="Lock age in minutes"),
) -> None:
    """
    Release running jobs whose lock is older than the given age.

    Examples:
        catalog-ingest jobs reap --older-than 60
    """
    with open_session() as session:
        result = JobRecovery(session).reclaim_stuck_running(older_than)
    rprint(f"Requeued: {result.requeued}, failed: {result.failed}")


@jobs_app.command("retry-failed")
def retry_failed(
    limit: int = typer.Option(50, "--limit", "-l", help="Maximum jobs to requeue"),
    kind: Optional[str] = typer.Option(None, "--kind", help="Only jobs of this kind"),
) -> None:
    """
    Requeue failed jobs with a fresh attempt budget.

    Examples:
        catalog-ingest jobs retry-failed --limit 10
    """
    with open_session() as session:
        count = JobRecovery(session).retry_failed(limit=limit, kind=kind)
    rprint(f"Requeued {count} failed jobs")


@jobs_app.command("bump-stale")
def bump_stale(
    older_than: int = typer.Option(120, "--older-than", help="Minutes overdue"),
) -> None:
    """
    Raise the priority of queued jobs that have been due for a long time.

    Examples:
        catalog-ingest jobs bump-stale
    """
    with open_session() as session:
        count = JobRecovery(session).requeue_stale_queued(older_than)
    rprint(f"Bumped {count} queued jobs")


@jobs_app.command("refresh-offers")
def refresh_offers() -> None:
    """
    Enqueue high-priority offer refresh jobs (at most once per hour).

    Examples:
        catalog-ingest jobs refresh-offers
    """
    with open_session() as session:
        created = JobRecovery(session).enqueue_freshness_refresh()
    if created:
        rprint(f"[green]Enqueued {len(created)} refresh jobs[/green]")
    else:
        rprint("[yellow]Refresh jobs for this hour already exist[/yellow]")
