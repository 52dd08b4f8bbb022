"""Tests for manual mapping of ingestion entities."""

import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from catalog_ingest.core.enums import EntityType
from catalog_ingest.core.errors import NotFoundError, ValidationError
from catalog_ingest.db.models import AdminLogDB, ProductDB
from catalog_ingest.ingestion.seed import SeedIngestor
from catalog_ingest.ingestion.snapshots import SnapshotIngestor
from catalog_ingest.ingestion.sources import MANUAL_SEED_SOURCE, ensure_source
from catalog_ingest.normalization.canonical import get_mapping, mapping_notes
from catalog_ingest.normalization.normalizer import Normalizer
from catalog_ingest.services.mapping_service import MappingService
from tests.factories import Catalog, make_product, product_record, seed_document

MISSING_ID = "00000000-0000-0000-0000-000000000000"


@pytest.fixture
def entity_id(session: Session) -> str:
    source = ensure_source(session, MANUAL_SEED_SOURCE)
    entity_id = SnapshotIngestor(session).upsert_entity(source.id, EntityType.PRODUCT, "tank-a")
    session.commit()
    return entity_id


class TestMapEntity:
    """Tests for MappingService.map_entity."""

    def test_map(self, session: Session, catalog: Catalog, entity_id: str) -> None:
        """Test a manual mapping and its audit row."""
        product = make_product(session, catalog)

        MappingService(session).map_entity(
            entity_id, "product", product.id, actor_user_id="admin-1", reason="Same tank"
        )

        mapping = get_mapping(session, entity_id)
        assert mapping.canonical_id == product.id
        assert mapping.match_method == "admin_manual"
        assert mapping.confidence == 100
        assert mapping_notes(mapping) == {"source": "admin_manual", "reason": "Same tank"}

        entry = session.execute(select(AdminLogDB)).scalar_one()
        assert entry.action == "ingestion.mapping.map"
        assert entry.target_id == entity_id
        meta = json.loads(entry.meta_json)
        assert meta["canonicalId"] == product.id
        assert meta["sourceEntityId"] == "tank-a"
        assert meta["previousMapping"] is None

    def test_remap_records_previous(
        self, session: Session, catalog: Catalog, entity_id: str
    ) -> None:
        """Test moving a mapping to another row."""
        first = make_product(session, catalog, "tank-a")
        second = make_product(session, catalog, "tank-b")
        service = MappingService(session)
        service.map_entity(entity_id, "product", first.id)

        service.map_entity(entity_id, "product", second.id, reason="Wrong tank")

        assert get_mapping(session, entity_id).canonical_id == second.id
        last = session.execute(
            select(AdminLogDB).order_by(AdminLogDB.created_at.desc()).limit(1)
        ).scalar_one()
        assert json.loads(last.meta_json)["previousMapping"]["canonicalId"] == first.id

    def test_type_mismatch(self, session: Session, catalog: Catalog, entity_id: str) -> None:
        """Test that a product entity cannot map to a plant."""
        product = make_product(session, catalog)
        with pytest.raises(ValidationError, match="mismatch"):
            MappingService(session).map_entity(entity_id, "plant", product.id)

    def test_missing_canonical_row(self, session: Session, entity_id: str) -> None:
        """Test mapping onto a row that does not exist."""
        with pytest.raises(NotFoundError):
            MappingService(session).map_entity(entity_id, "product", MISSING_ID)
        assert get_mapping(session, entity_id) is None

    def test_missing_entity(self, session: Session, catalog: Catalog) -> None:
        """Test mapping an entity that does not exist."""
        product = make_product(session, catalog)
        with pytest.raises(NotFoundError):
            MappingService(session).map_entity(MISSING_ID, "product", product.id)

    def test_manual_mapping_survives_normalization(
        self, session: Session, catalog: Catalog
    ) -> None:
        """Test that normalization reuses the manual link."""
        SeedIngestor(session).ingest_document(
            seed_document(products=[product_record("tank-a", sku="T1")], plants=[], offers=[]),
            "test.yaml",
        )
        session.commit()
        legacy = make_product(session, catalog, "legacy-tank")
        entity_id = SnapshotIngestor(session).upsert_entity(
            ensure_source(session, MANUAL_SEED_SOURCE).id, EntityType.PRODUCT, "tank-a"
        )
        session.commit()
        MappingService(session).map_entity(entity_id, "product", legacy.id, reason="Known dup")

        Normalizer(session).normalize_source()

        mapping = get_mapping(session, entity_id)
        assert mapping.canonical_id == legacy.id
        assert mapping.match_method == "admin_manual"
        assert mapping_notes(mapping)["reason"] == "Known dup"
        assert session.execute(select(func.count()).select_from(ProductDB)).scalar_one() == 1


class TestUnmapEntity:
    """Tests for MappingService.unmap_entity."""

    def test_unmap(self, session: Session, catalog: Catalog, entity_id: str) -> None:
        """Test removing a mapping."""
        product = make_product(session, catalog)
        service = MappingService(session)
        service.map_entity(entity_id, "product", product.id)

        service.unmap_entity(entity_id, actor_user_id="admin-1")

        assert get_mapping(session, entity_id) is None
        last = session.execute(
            select(AdminLogDB).order_by(AdminLogDB.created_at.desc()).limit(1)
        ).scalar_one()
        assert last.action == "ingestion.mapping.unmap"
        assert json.loads(last.meta_json)["previousMapping"]["canonicalId"] == product.id

    def test_unmap_without_mapping(self, session: Session, entity_id: str) -> None:
        """Test unmapping an entity that has no mapping."""
        with pytest.raises(NotFoundError):
            MappingService(session).unmap_entity(entity_id)
