"""Tests for the catalog-ingest command line."""

from pathlib import Path

import pytest
import yaml
from sqlalchemy import func, select
from typer.testing import CliRunner

from catalog_ingest import __version__
from catalog_ingest.cli.main import app
from catalog_ingest.db.engine import create_db_engine, create_session_factory
from catalog_ingest.db.models import ProductDB
from catalog_ingest.db.models_ingestion import IngestionJobDB
from tests.factories import seed_document

runner = CliRunner()


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A fresh SQLite file selected through DATABASE_URL."""
    path = tmp_path / "cli.db"
    monkeypatch.setenv("DATABASE_URL", str(path))
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0, result.output
    return path


def count(database: Path, model) -> int:
    engine = create_db_engine(database)
    try:
        with create_session_factory(engine)() as session:
            return session.execute(select(func.count()).select_from(model)).scalar_one()
    finally:
        engine.dispose()


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_db(database: Path) -> None:
    assert database.exists()


def test_seed_normalize_and_audit(database: Path, tmp_path: Path) -> None:
    """Test the seed-to-canonical path end to end."""
    seed_file = tmp_path / "tanks.yaml"
    seed_file.write_text(yaml.safe_dump(seed_document()), encoding="utf-8")

    seeded = runner.invoke(app, ["seed", str(seed_file), "--normalize"])
    assert seeded.exit_code == 0, seeded.output
    assert "tanks.yaml" in seeded.output
    assert count(database, ProductDB) == 1

    audited = runner.invoke(app, ["audit"])
    assert audited.exit_code == 0, audited.output
    assert "No displayed provenance violations" in audited.output


def test_seed_missing_file(database: Path, tmp_path: Path) -> None:
    result = runner.invoke(app, ["seed", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_enqueue_dedupes_on_key(database: Path) -> None:
    """Test idempotent enqueue from the command line."""
    args = ["enqueue", "offers.head_refresh.bulk", "--payload", '{"limit": 5}', "--key", "manual:1"]

    first = runner.invoke(app, args)
    second = runner.invoke(app, args)

    assert first.exit_code == 0, first.output
    assert "Enqueued" in first.output
    assert second.exit_code == 0, second.output
    assert "Deduped" in second.output
    assert count(database, IngestionJobDB) == 1


def test_enqueue_rejects_bad_payload(database: Path) -> None:
    """Test that validation errors exit with code 1 and write nothing."""
    result = runner.invoke(app, ["enqueue", "offers.head_refresh.bulk", "--payload", '{"limit": 0}'])

    assert result.exit_code == 1
    assert "Error" in result.output
    assert count(database, IngestionJobDB) == 0


def test_enqueue_rejects_unknown_kind(database: Path) -> None:
    result = runner.invoke(app, ["enqueue", "offers.teleport"])
    assert result.exit_code == 1


def test_worker_dry_run_on_empty_queue(database: Path) -> None:
    result = runner.invoke(app, ["worker", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert "No job is ready" in result.output


def test_jobs_stats(database: Path) -> None:
    runner.invoke(app, ["enqueue", "offers.detail_refresh.bulk"])
    result = runner.invoke(app, ["jobs", "stats"])
    assert result.exit_code == 0, result.output
    assert "queued" in result.output
