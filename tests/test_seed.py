"""Tests for manual seed ingestion."""

import json
from pathlib import Path

import pytest
import yaml
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from catalog_ingest.core.errors import ValidationError
from catalog_ingest.db.models import CategoryDB, RetailerDB
from catalog_ingest.db.models_ingestion import (
    IngestionEntityDB,
    IngestionRunDB,
    IngestionSnapshotDB,
)
from catalog_ingest.ingestion.seed import SeedIngestor, load_seed_document
from tests.factories import seed_document


def count(session: Session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


class TestSeedIngestor:
    """Tests for SeedIngestor."""

    def test_ingest_document(self, session: Session) -> None:
        """Test references are upserted and records become snapshots."""
        summary = SeedIngestor(session).ingest_document(seed_document(), "tanks.yaml")
        session.commit()

        assert summary.references == {"categories": 1, "brands": 1, "retailers": 1}
        assert summary.sections["products"].snapshots_created == 1
        assert summary.sections["plants"].snapshots_created == 1
        assert summary.sections["offers"].snapshots_created == 1
        assert count(session, IngestionSnapshotDB) == 3

        source_ids = set(
            session.execute(
                select(IngestionEntityDB.source_entity_id).order_by(
                    IngestionEntityDB.source_entity_id
                )
            ).scalars()
        )
        assert source_ids == {"tank-a", "java-fern", "tank-a:shop-a"}

        run = session.get(IngestionRunDB, summary.run_id)
        assert run.status == "success"
        assert json.loads(run.stats_json)["records"]["products"]["ingested"] == 1

    def test_reingest_is_idempotent(self, session: Session) -> None:
        """Test that the same document produces no new snapshots."""
        ingestor = SeedIngestor(session)
        ingestor.ingest_document(seed_document(), "tanks.yaml")
        summary = ingestor.ingest_document(seed_document(), "tanks.yaml")
        session.commit()

        data = summary.to_dict()
        assert data["records"]["products"] == {"ingested": 1, "snapshotsCreated": 0, "unchanged": 1}
        assert count(session, IngestionSnapshotDB) == 3
        assert count(session, CategoryDB) == 1
        assert count(session, IngestionRunDB) == 2

    def test_reference_rows_are_updated(self, session: Session) -> None:
        """Test reference upsert by slug."""
        ingestor = SeedIngestor(session)
        ingestor.ingest_document(seed_document(), "a.yaml")
        ingestor.ingest_document(
            seed_document(retailers=[{"slug": "shop-a", "name": "Shop A Renamed"}]), "b.yaml"
        )
        session.commit()

        names = session.execute(select(RetailerDB.name)).scalars().all()
        assert names == ["Shop A Renamed"]

    def test_invalid_record_writes_nothing(self, session: Session) -> None:
        """Test that validation happens before any write."""
        document = seed_document(products=[{"slug": "Not A Slug", "name": "x"}])

        with pytest.raises(ValidationError, match=r"products\[0\]"):
            SeedIngestor(session).ingest_document(document, "bad.yaml")

        assert count(session, CategoryDB) == 0
        assert count(session, IngestionEntityDB) == 0

    def test_section_must_be_a_list(self, session: Session) -> None:
        """Test section shape validation."""
        with pytest.raises(ValidationError, match="must be a list"):
            SeedIngestor(session).ingest_document({"products": {"slug": "x"}}, "bad.yaml")

    def test_ingest_path(self, session: Session, tmp_path: Path) -> None:
        """Test loading a YAML file from disk."""
        path = tmp_path / "tanks.yaml"
        path.write_text(yaml.safe_dump(seed_document()))

        summary = SeedIngestor(session).ingest_path(path)

        assert summary.seed_name == "tanks.yaml"
        assert summary.sections["products"].ingested == 1


class TestLoadSeedDocument:
    """Tests for load_seed_document."""

    def test_json_is_accepted(self, tmp_path: Path) -> None:
        """Test that JSON goes through the YAML loader."""
        path = tmp_path / "seed.json"
        path.write_text(json.dumps({"products": []}))
        assert load_seed_document(path) == {"products": []}

    def test_empty_file(self, tmp_path: Path) -> None:
        """Test an empty document."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_seed_document(path) == {}

    def test_top_level_list_is_rejected(self, tmp_path: Path) -> None:
        """Test that a document must be a mapping."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValidationError):
            load_seed_document(path)
