"""Provenance audit of the canonical catalog.

A canonical row is ingestion-backed when at least one ingestion entity of
the matching type is mapped to it. The audit counts rows that are not,
separately for everything in the catalog and for what users can see, and
counts build parts that reference such rows. It never writes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import and_, exists, func, not_, or_, select
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.enums import CanonicalType, CatalogStatus
from catalog_ingest.db.models import BuildItemDB, CategoryDB, OfferDB, PlantDB, ProductDB
from catalog_ingest.db.models_ingestion import CanonicalMappingDB, IngestionEntityDB

logger = logging.getLogger(__name__)


def ingestion_backed(canonical_type: CanonicalType, canonical_id_column):
    """EXISTS clause: some entity of this type is mapped to the row."""
    return exists(
        select(CanonicalMappingDB.id)
        .join(IngestionEntityDB, IngestionEntityDB.id == CanonicalMappingDB.entity_id)
        .where(
            CanonicalMappingDB.canonical_type == canonical_type.value,
            IngestionEntityDB.entity_type == canonical_type.value,
            CanonicalMappingDB.canonical_id == canonical_id_column,
        )
    )


@dataclass
class ProvenanceCounts:
    products: int = 0
    plants: int = 0
    offers: int = 0
    categories: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "products": self.products,
            "plants": self.plants,
            "offers": self.offers,
            "categories": self.categories,
        }


@dataclass
class BuildPartCounts:
    products: int = 0
    plants: int = 0

    @property
    def total(self) -> int:
        return self.products + self.plants

    def to_dict(self) -> dict[str, int]:
        return {"products": self.products, "plants": self.plants, "total": self.total}


@dataclass
class ProvenanceReport:
    """Result of one provenance audit."""

    generated_at: datetime
    canonical_without_provenance: ProvenanceCounts = field(default_factory=ProvenanceCounts)
    displayed_without_provenance: ProvenanceCounts = field(default_factory=ProvenanceCounts)
    build_parts_referencing_non_provenance: BuildPartCounts = field(
        default_factory=BuildPartCounts
    )

    @property
    def has_displayed_violations(self) -> bool:
        displayed = self.displayed_without_provenance
        return (
            displayed.products > 0
            or displayed.plants > 0
            or displayed.offers > 0
            or displayed.categories > 0
            or self.build_parts_referencing_non_provenance.total > 0
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generatedAt": self.generated_at.isoformat(),
            "canonicalWithoutProvenance": self.canonical_without_provenance.to_dict(),
            "displayedWithoutProvenance": self.displayed_without_provenance.to_dict(),
            "buildPartsReferencingNonProvenance": (
                self.build_parts_referencing_non_provenance.to_dict()
            ),
            "hasDisplayedViolations": self.has_displayed_violations,
        }


class ProvenanceAuditor:
    """
    Read-only audit of canonical rows lacking ingestion provenance.

    Example:
        report = ProvenanceAuditor(session).audit()
        if report.has_displayed_violations:
            ...
    """

    def __init__(self, session: Session):
        self.session = session

    def _count(self, stmt) -> int:
        return int(self.session.execute(stmt).scalar() or 0)

    def audit(self) -> ProvenanceReport:
        """Run every count in one pass and return the report."""
        product_backed = ingestion_backed(CanonicalType.PRODUCT, ProductDB.id)
        plant_backed = ingestion_backed(CanonicalType.PLANT, PlantDB.id)
        offer_backed = ingestion_backed(CanonicalType.OFFER, OfferDB.id)
        active = CatalogStatus.ACTIVE.value

        report = ProvenanceReport(generated_at=utc_now())

        canonical = report.canonical_without_provenance
        canonical.products = self._count(
            select(func.count()).select_from(ProductDB).where(not_(product_backed))
        )
        canonical.plants = self._count(
            select(func.count()).select_from(PlantDB).where(not_(plant_backed))
        )
        canonical.offers = self._count(
            select(func.count()).select_from(OfferDB).where(not_(offer_backed))
        )
        canonical.categories = self._count(
            select(func.count(CategoryDB.id.distinct()))
            .join(ProductDB, ProductDB.category_id == CategoryDB.id)
            .where(not_(product_backed))
        )

        displayed = report.displayed_without_provenance
        displayed.products = self._count(
            select(func.count())
            .select_from(ProductDB)
            .where(ProductDB.status == active, not_(product_backed))
        )
        displayed.plants = self._count(
            select(func.count())
            .select_from(PlantDB)
            .where(PlantDB.status == active, not_(plant_backed))
        )
        displayed.offers = self._count(
            select(func.count())
            .select_from(OfferDB)
            .join(ProductDB, OfferDB.product_id == ProductDB.id)
            .where(
                and_(ProductDB.status == active, or_(not_(product_backed), not_(offer_backed)))
            )
        )
        displayed.categories = self._count(
            select(func.count(CategoryDB.id.distinct()))
            .join(ProductDB, ProductDB.category_id == CategoryDB.id)
            .where(ProductDB.status == active, not_(product_backed))
        )

        parts = report.build_parts_referencing_non_provenance
        parts.products = self._count(
            select(func.count())
            .select_from(BuildItemDB)
            .join(ProductDB, BuildItemDB.product_id == ProductDB.id)
            .where(not_(product_backed))
        )
        parts.plants = self._count(
            select(func.count())
            .select_from(BuildItemDB)
            .join(PlantDB, BuildItemDB.plant_id == PlantDB.id)
            .where(not_(plant_backed))
        )

        logger.info(
            f"Provenance audit: displayed={displayed.to_dict()} build_parts={parts.total} "
            f"violations={report.has_displayed_violations}"
        )
        return report
