"""
Manual Seed Ingestion
=====================

Loads curated seed documents (YAML or JSON) into the pipeline:

    categories: [{slug, name}]          # reference rows, upserted by slug
    brands:     [{slug, name}]
    retailers:  [{slug, name}]
    products:   [{category_slug, brand_slug, name, slug, sku, ...}]
    plants:     [{common_name, slug, difficulty, ...}]
    offers:     [{product_slug, retailer_slug, price_cents, ...}]

Every product, plant and offer record becomes a snapshot of the
manual_seed source. Canonical rows are written later by the normalizer.
The whole document is validated before anything is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.enums import EntityType, RunStatus
from catalog_ingest.core.errors import ValidationError
from catalog_ingest.core.schema import (
    BrandSeed,
    CategorySeed,
    OfferSeed,
    PlantSeed,
    ProductSeed,
    RetailerSeed,
    validate_record,
)
from catalog_ingest.db.models import BrandDB, CategoryDB, RetailerDB, _generate_uuid
from catalog_ingest.db.upsert import dialect_insert
from catalog_ingest.ingestion.registry import SourceDefinition
from catalog_ingest.ingestion.snapshots import SnapshotIngestor
from catalog_ingest.ingestion.sources import (
    MANUAL_SEED_SOURCE,
    ensure_source,
    finish_run,
    start_run,
)

logger = logging.getLogger(__name__)

REFERENCE_SECTIONS = (
    ("categories", CategorySeed, CategoryDB),
    ("brands", BrandSeed, BrandDB),
    ("retailers", RetailerSeed, RetailerDB),
)

RECORD_SECTIONS = (
    ("products", ProductSeed, EntityType.PRODUCT),
    ("plants", PlantSeed, EntityType.PLANT),
    ("offers", OfferSeed, EntityType.OFFER),
)


@dataclass
class SectionStats:
    """Counters for one record section."""

    ingested: int = 0
    snapshots_created: int = 0

    @property
    def unchanged(self) -> int:
        return self.ingested - self.snapshots_created


@dataclass
class SeedIngestSummary:
    """Result of ingesting one seed document."""

    seed_name: str
    run_id: str | None = None
    references: dict[str, int] = field(default_factory=dict)
    sections: dict[str, SectionStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "seed": self.seed_name,
            "runId": self.run_id,
            "references": dict(self.references),
            "records": {
                name: {
                    "ingested": stats.ingested,
                    "snapshotsCreated": stats.snapshots_created,
                    "unchanged": stats.unchanged,
                }
                for name, stats in self.sections.items()
            },
        }


def seed_source_entity_id(entity_type: EntityType, record: Any) -> str:
    """Stable per-source identifier of a seed record."""
    if entity_type is EntityType.OFFER:
        return f"{record.product_slug}:{record.retailer_slug}"
    return record.slug


def load_seed_document(path: Path | str) -> dict[str, Any]:
    """
    Read a seed document. JSON is read through the YAML loader.

    Raises:
        FileNotFoundError: If the file does not exist
        ValidationError: If the document is not a mapping
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"Seed document {path.name} must be a mapping of sections")
    return data


class SeedIngestor:
    """
    Ingests seed documents as snapshots of a manual source.

    Writes are flushed, not committed; the caller owns the transaction.
    """

    def __init__(self, session: Session, source: SourceDefinition = MANUAL_SEED_SOURCE) -> None:
        self.session = session
        self.source_definition = source
        self.snapshots = SnapshotIngestor(session)

    def ingest_path(self, path: Path | str) -> SeedIngestSummary:
        """Load and ingest one seed file."""
        path = Path(path)
        return self.ingest_document(load_seed_document(path), seed_name=path.name)

    def ingest_document(self, document: dict[str, Any], seed_name: str) -> SeedIngestSummary:
        """
        Ingest a parsed seed document.

        Raises:
            ValidationError: If any section or record is malformed (nothing
                is written in that case)
        """
        references = {
            name: self._validate_section(document, name, model)
            for name, model, _ in REFERENCE_SECTIONS
        }
        records = {
            name: self._validate_section(document, name, model)
            for name, model, _ in RECORD_SECTIONS
        }

        summary = SeedIngestSummary(seed_name=seed_name)
        for name, _, table_model in REFERENCE_SECTIONS:
            for _, item in references[name]:
                self._upsert_reference(table_model, item)
            summary.references[name] = len(references[name])

        source = ensure_source(self.session, self.source_definition)
        run = start_run(self.session, source.id)
        summary.run_id = run.id
        observed_at = utc_now()

        for name, _, entity_type in RECORD_SECTIONS:
            stats = SectionStats()
            for raw, record in records[name]:
                source_entity_id = seed_source_entity_id(entity_type, record)
                result = self.snapshots.ingest(
                    source.id,
                    run.id,
                    entity_type,
                    source_entity_id,
                    raw,
                    url=getattr(record, "url", None),
                    fetched_at=observed_at,
                    meta={"seed": seed_name, "sourceEntityId": source_entity_id},
                )
                stats.ingested += 1
                if result.snapshot_created:
                    stats.snapshots_created += 1
            summary.sections[name] = stats

        finish_run(self.session, run.id, RunStatus.SUCCESS, stats=summary.to_dict())
        logger.info(f"Seed '{seed_name}' ingested: {summary.to_dict()['records']}")
        return summary

    def _validate_section(
        self, document: dict[str, Any], name: str, model: type
    ) -> list[tuple[dict[str, Any], Any]]:
        items = document.get(name) or []
        if not isinstance(items, list):
            raise ValidationError(f"Seed section '{name}' must be a list")
        return [
            (raw, validate_record(model, raw, f"{name}[{index}]"))
            for index, raw in enumerate(items)
        ]

    def _upsert_reference(self, table_model: type, item: Any) -> None:
        values = item.model_dump(exclude={"slug"})
        now = utc_now()
        stmt = dialect_insert(self.session, table_model.__table__).values(
            id=_generate_uuid(), slug=item.slug, created_at=now, updated_at=now, **values
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"], set_={**values, "updated_at": now}
        )
        self.session.execute(stmt)
