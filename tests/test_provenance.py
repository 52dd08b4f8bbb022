"""Tests for the provenance auditor."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_ingest.db.models import BuildDB, BuildItemDB, PlantDB
from catalog_ingest.ingestion.seed import SeedIngestor
from catalog_ingest.normalization.normalizer import Normalizer
from catalog_ingest.services.provenance import ProvenanceAuditor
from tests.factories import Catalog, make_offer, make_product, seed_document


def add_build(session: Session, **target: str) -> BuildItemDB:
    build = BuildDB(name="My 20 gallon")
    session.add(build)
    session.flush()
    item = BuildItemDB(build_id=build.id, **target)
    session.add(item)
    session.commit()
    return item


class TestProvenanceAuditor:
    """Tests for ProvenanceAuditor.audit."""

    def test_empty_catalog(self, session: Session) -> None:
        """Test that an empty catalog is clean."""
        report = ProvenanceAuditor(session).audit()
        assert report.has_displayed_violations is False
        assert report.build_parts_referencing_non_provenance.total == 0

    def test_unmapped_product_in_a_build(self, session: Session, catalog: Catalog) -> None:
        """Test an active product with no mapping referenced by a build."""
        product = make_product(session, catalog)
        add_build(session, product_id=product.id)

        report = ProvenanceAuditor(session).audit()

        assert report.canonical_without_provenance.products >= 1
        assert report.displayed_without_provenance.products == 1
        assert report.displayed_without_provenance.categories == 1
        assert report.build_parts_referencing_non_provenance.products == 1
        assert report.build_parts_referencing_non_provenance.total >= 1
        assert report.has_displayed_violations is True

    def test_normalized_catalog_is_clean(self, session: Session) -> None:
        """Test that rows written by normalization are backed."""
        SeedIngestor(session).ingest_document(seed_document(), "test.yaml")
        session.commit()
        Normalizer(session).normalize_source()
        plant_id = session.execute(select(PlantDB.id)).scalar_one()
        add_build(session, plant_id=plant_id)

        report = ProvenanceAuditor(session).audit()

        assert report.canonical_without_provenance.to_dict() == {
            "products": 0,
            "plants": 0,
            "offers": 0,
            "categories": 0,
        }
        assert report.has_displayed_violations is False

    def test_inactive_rows_are_not_displayed(self, session: Session, catalog: Catalog) -> None:
        """Test that hidden rows only count toward the catalog totals."""
        make_product(session, catalog, status="inactive")

        report = ProvenanceAuditor(session).audit()

        assert report.canonical_without_provenance.products == 1
        assert report.displayed_without_provenance.products == 0
        assert report.has_displayed_violations is False

    def test_unmapped_offer_on_displayed_product(
        self, session: Session, catalog: Catalog
    ) -> None:
        """Test that offers of unbacked products count as displayed violations."""
        product = make_product(session, catalog)
        make_offer(session, product, catalog.retailer)

        report = ProvenanceAuditor(session).audit()

        assert report.canonical_without_provenance.offers == 1
        assert report.displayed_without_provenance.offers == 1

    def test_report_is_read_only(self, session: Session, catalog: Catalog) -> None:
        """Test that auditing twice gives the same counts."""
        make_product(session, catalog)
        auditor = ProvenanceAuditor(session)
        first = auditor.audit().to_dict()
        second = auditor.audit().to_dict()
        first.pop("generatedAt")
        second.pop("generatedAt")
        assert first == second
        assert first["buildPartsReferencingNonProvenance"] == {
            "products": 0,
            "plants": 0,
            "total": 0,
        }
