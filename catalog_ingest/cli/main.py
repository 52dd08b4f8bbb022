"""Catalog Ingest CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.logging import RichHandler

from catalog_ingest import __version__
from catalog_ingest.cli import admin, ingest

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
    name="catalog-ingest",
    help="Catalog Ingest - ingestion, normalization and audit of the product catalog",
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    level = os.environ.get("LOG_LEVEL", "DEBUG" if verbose else "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from catalog_ingest.db.engine import create_db_engine
    from catalog_ingest.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    engine = create_db_engine()
    db_init(engine)
    engine.dispose()
    typer.echo("Database initialized successfully!")


@app.command()
def migrate() -> None:
    """Upgrade the database schema to the latest migration."""
    from catalog_ingest.db.engine import get_database_url, run_migrations

    typer.echo(f"Migrating {get_database_url()} ...")
    run_migrations()
    typer.echo("Database is up to date.")


@app.command()
def version() -> None:
    """Show the Catalog Ingest version."""
    typer.echo(f"Catalog Ingest v{__version__}")


app.command("seed")(ingest.seed)
app.command("normalize")(ingest.normalize)
app.command("schedule")(ingest.schedule)
app.command("worker")(ingest.worker)
app.command("enqueue")(ingest.enqueue)
app.command("audit")(admin.audit)

app.add_typer(ingest.sources_app, name="sources")
app.add_typer(ingest.jobs_app, name="jobs")
app.add_typer(admin.summaries_app, name="summaries")
app.add_typer(admin.overrides_app, name="overrides")
app.add_typer(admin.mappings_app, name="mappings")


if __name__ == "__main__":
    app()
