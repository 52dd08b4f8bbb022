"""Tests for the Alembic migrations."""

from pathlib import Path

from sqlalchemy import inspect

from catalog_ingest.db import Base
from catalog_ingest.db.engine import create_db_engine, run_migrations


def test_upgrade_creates_every_table(tmp_path: Path) -> None:
    """Test that migrating an empty database yields the model schema."""
    database = tmp_path / "migrated.db"

    run_migrations(database)

    engine = create_db_engine(database)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert tables - {"alembic_version"} == set(Base.metadata.tables)


def test_upgrade_is_repeatable(tmp_path: Path) -> None:
    """Test that running migrations twice is a no-op."""
    database = tmp_path / "migrated.db"
    run_migrations(database)
    run_migrations(database)

    engine = create_db_engine(database)
    try:
        columns = {c["name"] for c in inspect(engine).get_columns("ingestion_jobs")}
    finally:
        engine.dispose()
    assert {"idempotency_key", "run_after", "locked_by", "attempts"} <= columns
