"""Helpers shared by CLI commands."""

import json
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import typer
from rich import print as rprint
from rich.console import Console
from sqlalchemy.orm import Session

from catalog_ingest.core.errors import CatalogError
from catalog_ingest.db.engine import create_db_engine, create_session_factory, session_scope

console = Console()


@contextmanager
def open_session() -> Generator[Session, None, None]:
    """
    Session on the configured database, committed on exit.

    Catalog errors are printed and turned into exit code 1.
    """
    engine = create_db_engine()
    try:
        with session_scope(create_session_factory(engine)) as session:
            yield session
    except CatalogError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        engine.dispose()


def parse_json_option(value: str | None, option: str) -> Any:
    """Decode a JSON command line option, exiting with an error if malformed."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        rprint(f"[red]Error:[/red] {option} is not valid JSON: {e}")
        raise typer.Exit(1) from e


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))
