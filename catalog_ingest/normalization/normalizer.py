"""
Normalizer Module
=================

Turns the latest snapshot of every ingestion entity of a source into
canonical rows.

Per entity type, in the fixed order products -> plants -> offers (offers
resolve their product through the rows the product pass just wrote):

1. Read the single most recent snapshot of each entity.
2. Validate the payload against its seed schema.
3. Resolve canonical identity with the type's matcher.
4. Merge fields: overrides win, then fresh values, images never regress.
5. Insert or update the canonical row and upsert the entity's mapping.

A pass is one transaction. Any failure (invalid snapshot, unknown
reference slug, matcher error) rolls the whole pass back and propagates.
Callers must not run two passes for the same source concurrently.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_ingest.core.enums import CanonicalType, EntityType
from catalog_ingest.core.errors import NotFoundError, ValidationError
from catalog_ingest.core.schema import OfferSeed, PlantSeed, ProductSeed, validate_record
from catalog_ingest.db.models import (
    BrandDB,
    CategoryDB,
    OfferDB,
    PlantDB,
    ProductDB,
    RetailerDB,
    _generate_uuid,
)
from catalog_ingest.db.models_ingestion import (
    CanonicalMappingDB,
    IngestionEntityDB,
    IngestionSnapshotDB,
    IngestionSourceDB,
)
from catalog_ingest.ingestion.sources import get_source_by_slug
from catalog_ingest.normalization.canonical import (
    CANONICAL_MODELS,
    mapping_notes,
    read_fields,
    upsert_mapping,
    write_fields,
)
from catalog_ingest.normalization.matchers import (
    PRODUCT_IDENTIFIER_KEYS,
    CanonicalMatcher,
    ExistingMapping,
    MatchResult,
    OfferKeys,
    OfferMatcher,
    PlantKeys,
    PlantMatcher,
    ProductKeys,
    ProductMatcher,
)
from catalog_ingest.normalization.overrides import (
    OVERRIDE_NOTES_SOURCE,
    ActiveOverride,
    MergeResult,
    load_overrides,
    merge_fields,
)
from catalog_ingest.services.audit_log import log_admin_action
from catalog_ingest.services.offer_summaries import OfferSummaryService

logger = logging.getLogger(__name__)


@dataclass
class TypeStats:
    """Counters for one entity type."""

    processed: int = 0
    inserted: int = 0
    updated: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"processed": self.processed, "inserted": self.inserted, "updated": self.updated}


@dataclass
class NormalizationSummary:
    """Result of one normalization pass."""

    source_slug: str
    products: TypeStats = field(default_factory=TypeStats)
    plants: TypeStats = field(default_factory=TypeStats)
    offers: TypeStats = field(default_factory=TypeStats)
    mappings_upserted: int = 0
    summaries_refreshed: int = 0

    @property
    def total_inserted(self) -> int:
        return self.products.inserted + self.plants.inserted + self.offers.inserted

    @property
    def total_updated(self) -> int:
        return self.products.updated + self.plants.updated + self.offers.updated

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source": self.source_slug,
            "products": self.products.to_dict(),
            "plants": self.plants.to_dict(),
            "offers": self.offers.to_dict(),
            "mappingsUpserted": self.mappings_upserted,
            "summariesRefreshed": self.summaries_refreshed,
            "totalInserted": self.total_inserted,
            "totalUpdated": self.total_updated,
        }


@dataclass
class LatestSnapshot:
    """Most recent snapshot of one ingestion entity."""

    entity: IngestionEntityDB
    snapshot_id: str
    payload: dict[str, Any]


def product_keys_from_row(row: ProductDB) -> ProductKeys:
    """Matcher keys of a canonical product."""
    meta = json.loads(row.meta_json or "{}")
    identifiers = meta.get("identifiers") or {}
    return ProductKeys(
        id=row.id,
        slug=row.slug,
        brand_id=row.brand_id,
        name=row.name,
        model=meta.get("model"),
        model_number=meta.get("model_number"),
        identifiers={str(k): str(v) for k, v in identifiers.items() if v},
    )


def product_identifiers(record: ProductSeed) -> dict[str, str]:
    """Known identifier fields of a product record plus its extra identifiers."""
    identifiers = {
        key: str(getattr(record, key))
        for key in PRODUCT_IDENTIFIER_KEYS
        if key != "model_number" and getattr(record, key)
    }
    for key, value in record.identifiers.items():
        if value:
            identifiers.setdefault(key, value)
    return identifiers


class Normalizer:
    """
    Canonical normalization for one ingestion source at a time.

    Example:
        normalizer = Normalizer(session)
        summary = normalizer.normalize_source("manual_seed")
    """

    def __init__(
        self,
        session: Session,
        summaries: OfferSummaryService | None = None,
        actor_user_id: str | None = None,
    ) -> None:
        self.session = session
        self.summaries = summaries or OfferSummaryService(session)
        self.actor_user_id = actor_user_id

    def normalize_source(self, source_slug: str = "manual_seed") -> NormalizationSummary:
        """
        Run one normalization pass for a source and commit it.

        Raises:
            NotFoundError: Unknown source or reference slug
            ValidationError: A snapshot payload fails its schema
        """
        source = get_source_by_slug(self.session, source_slug)
        summary = NormalizationSummary(source_slug=source.slug)

        try:
            self._normalize_products(source, summary)
            self._normalize_plants(source, summary)
            touched_products = self._normalize_offers(source, summary)
            summary.summaries_refreshed = self.summaries.refresh_for_product_ids(touched_products)
            log_admin_action(
                self.session,
                action="normalization.run",
                target_type="ingestion_source",
                target_id=source.id,
                actor_user_id=self.actor_user_id,
                meta=summary.to_dict(),
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.error(f"Normalization of source '{source_slug}' failed; pass rolled back")
            raise

        logger.info(
            f"Normalized source '{source.slug}': {summary.total_inserted} inserted, "
            f"{summary.total_updated} updated, {summary.mappings_upserted} mappings"
        )
        return summary

    # =========================================================================
    # Snapshot and mapping reads
    # =========================================================================

    def latest_snapshots(self, source_id: str, entity_type: EntityType) -> list[LatestSnapshot]:
        """Most recent snapshot per active entity, ordered by source entity id."""
        entities = self.session.execute(
            select(IngestionEntityDB)
            .where(
                IngestionEntityDB.source_id == source_id,
                IngestionEntityDB.entity_type == entity_type.value,
                IngestionEntityDB.active.is_(True),
            )
            .order_by(IngestionEntityDB.source_entity_id, IngestionEntityDB.id)
        ).scalars().all()

        latest: list[LatestSnapshot] = []
        for entity in entities:
            snapshot = self.session.execute(
                select(IngestionSnapshotDB)
                .where(IngestionSnapshotDB.entity_id == entity.id)
                .order_by(
                    IngestionSnapshotDB.fetched_at.desc(),
                    IngestionSnapshotDB.created_at.desc(),
                    IngestionSnapshotDB.id.desc(),
                )
                .limit(1)
            ).scalar_one_or_none()
            if snapshot is None:
                continue
            payload = json.loads(snapshot.raw_json)
            if not isinstance(payload, dict):
                raise ValidationError(f"Snapshot {snapshot.id} payload is not an object")
            latest.append(LatestSnapshot(entity=entity, snapshot_id=snapshot.id, payload=payload))
        return latest

    def _mappings_for(self, source_id: str, entity_type: EntityType) -> dict[str, CanonicalMappingDB]:
        rows = self.session.execute(
            select(CanonicalMappingDB)
            .join(IngestionEntityDB, IngestionEntityDB.id == CanonicalMappingDB.entity_id)
            .where(
                IngestionEntityDB.source_id == source_id,
                IngestionEntityDB.entity_type == entity_type.value,
            )
        ).scalars()
        return {row.entity_id: row for row in rows}

    def _slug_map(self, model) -> dict[str, str]:
        return {slug: id_ for slug, id_ in self.session.execute(select(model.slug, model.id))}

    # =========================================================================
    # Shared resolve / merge / write
    # =========================================================================

    def _resolve(
        self,
        canonical_type: CanonicalType,
        matcher: CanonicalMatcher,
        keys: Any,
        mapping: CanonicalMappingDB | None,
        rows: dict[str, Any],
    ) -> MatchResult:
        existing = None
        if mapping is not None:
            if mapping.canonical_id in rows:
                existing = ExistingMapping(
                    canonical_id=mapping.canonical_id,
                    match_method=mapping.match_method,
                    confidence=mapping.confidence,
                )
            else:
                logger.warning(
                    f"Mapping of entity {mapping.entity_id} points at missing "
                    f"{canonical_type.value} {mapping.canonical_id}; resolving again"
                )
        return matcher.match(keys, existing)

    def _upsert_canonical(
        self,
        canonical_type: CanonicalType,
        rows: dict[str, Any],
        match: MatchResult,
        incoming: dict[str, Any],
        overrides: dict[str, list[ActiveOverride]],
        stats: TypeStats,
    ) -> tuple[Any, MergeResult]:
        row = rows.get(match.canonical_id) if match.canonical_id else None
        stats.processed += 1

        if row is not None:
            merge = merge_fields(
                incoming, read_fields(row, canonical_type), overrides.get(row.id, [])
            )
            write_fields(row, canonical_type, merge.values)
            stats.updated += 1
        else:
            merge = merge_fields(incoming)
            row = CANONICAL_MODELS[canonical_type](id=_generate_uuid())
            write_fields(row, canonical_type, merge.values)
            self.session.add(row)
            rows[row.id] = row
            stats.inserted += 1

        self.session.flush()
        return row, merge

    def _write_mapping(
        self,
        entity_id: str,
        canonical_type: CanonicalType,
        canonical_id: str,
        match: MatchResult,
        merge: MergeResult,
        previous: CanonicalMappingDB | None,
        summary: NormalizationSummary,
    ) -> None:
        notes = merge.notes()
        if notes is None:
            previous_notes = mapping_notes(previous)
            # Keep notes written by admins; drop stale override explanations.
            if previous_notes and previous_notes.get("source") != OVERRIDE_NOTES_SOURCE:
                notes = previous_notes
        upsert_mapping(
            self.session,
            entity_id=entity_id,
            canonical_type=canonical_type,
            canonical_id=canonical_id,
            match_method=match.match_method,
            confidence=match.confidence,
            notes=notes,
        )
        summary.mappings_upserted += 1

    # =========================================================================
    # Products
    # =========================================================================

    def _normalize_products(self, source: IngestionSourceDB, summary: NormalizationSummary) -> None:
        latest = self.latest_snapshots(source.id, EntityType.PRODUCT)
        if not latest:
            return

        categories = self._slug_map(CategoryDB)
        brands = self._slug_map(BrandDB)
        rows: dict[str, ProductDB] = {
            row.id: row
            for row in self.session.execute(select(ProductDB).order_by(ProductDB.id)).scalars()
        }
        matcher = ProductMatcher([product_keys_from_row(row) for row in rows.values()])
        mappings = self._mappings_for(source.id, EntityType.PRODUCT)
        overrides = load_overrides(self.session, CanonicalType.PRODUCT)

        for item in latest:
            record: ProductSeed = validate_record(
                ProductSeed, item.payload, f"Product snapshot {item.snapshot_id}"
            )
            category_id = categories.get(record.category_slug)
            if category_id is None:
                raise NotFoundError(f"Unknown category slug: {record.category_slug}")
            brand_id = brands.get(record.brand_slug)
            if brand_id is None:
                raise NotFoundError(f"Unknown brand slug: {record.brand_slug}")

            identifiers = product_identifiers(record)
            keys = ProductKeys(
                id=None,
                slug=record.slug,
                brand_id=brand_id,
                name=record.name,
                model=record.model,
                model_number=record.model_number,
                source_entity_id=item.entity.source_entity_id,
                identifiers=identifiers,
            )
            incoming = {
                "category_id": category_id,
                "brand_id": brand_id,
                "name": record.name,
                "slug": record.slug,
                "description": record.description,
                "image_url": record.image_url,
                "image_urls": record.image_urls or [],
                "specs": record.specs,
                "meta": {
                    "sources": record.sources,
                    "source_notes": record.source_notes,
                    "curated_rank": record.curated_rank,
                    "model": record.model,
                    "model_number": record.model_number,
                    "identifiers": identifiers,
                },
                "status": record.status.value,
                "source": source.slug,
                "verified": record.verified,
            }

            mapping = mappings.get(item.entity.id)
            match = self._resolve(CanonicalType.PRODUCT, matcher, keys, mapping, rows)
            row, merge = self._upsert_canonical(
                CanonicalType.PRODUCT, rows, match, incoming, overrides, summary.products
            )
            matcher.add(product_keys_from_row(row))
            self._write_mapping(
                item.entity.id, CanonicalType.PRODUCT, row.id, match, merge, mapping, summary
            )

    # =========================================================================
    # Plants
    # =========================================================================

    def _normalize_plants(self, source: IngestionSourceDB, summary: NormalizationSummary) -> None:
        latest = self.latest_snapshots(source.id, EntityType.PLANT)
        if not latest:
            return

        rows: dict[str, PlantDB] = {
            row.id: row
            for row in self.session.execute(select(PlantDB).order_by(PlantDB.id)).scalars()
        }
        matcher = PlantMatcher(
            [PlantKeys(row.id, row.slug, row.scientific_name) for row in rows.values()]
        )
        mappings = self._mappings_for(source.id, EntityType.PLANT)
        overrides = load_overrides(self.session, CanonicalType.PLANT)

        for item in latest:
            record: PlantSeed = validate_record(
                PlantSeed, item.payload, f"Plant snapshot {item.snapshot_id}"
            )
            incoming = record.model_dump()
            incoming["status"] = record.status.value
            incoming["image_urls"] = record.image_urls or []

            mapping = mappings.get(item.entity.id)
            keys = PlantKeys(None, record.slug, record.scientific_name)
            match = self._resolve(CanonicalType.PLANT, matcher, keys, mapping, rows)
            row, merge = self._upsert_canonical(
                CanonicalType.PLANT, rows, match, incoming, overrides, summary.plants
            )
            matcher.add(PlantKeys(row.id, row.slug, row.scientific_name))
            self._write_mapping(
                item.entity.id, CanonicalType.PLANT, row.id, match, merge, mapping, summary
            )

    # =========================================================================
    # Offers
    # =========================================================================

    def _normalize_offers(self, source: IngestionSourceDB, summary: NormalizationSummary) -> set[str]:
        touched_products: set[str] = set()
        latest = self.latest_snapshots(source.id, EntityType.OFFER)
        if not latest:
            return touched_products

        products = self._slug_map(ProductDB)
        retailers = self._slug_map(RetailerDB)
        rows: dict[str, OfferDB] = {
            row.id: row
            for row in self.session.execute(select(OfferDB).order_by(OfferDB.id)).scalars()
        }
        matcher = OfferMatcher(
            [OfferKeys(row.id, row.product_id, row.retailer_id) for row in rows.values()]
        )
        mappings = self._mappings_for(source.id, EntityType.OFFER)
        overrides = load_overrides(self.session, CanonicalType.OFFER)

        for item in latest:
            record: OfferSeed = validate_record(
                OfferSeed, item.payload, f"Offer snapshot {item.snapshot_id}"
            )
            product_id = products.get(record.product_slug)
            if product_id is None:
                raise NotFoundError(f"Unknown product slug: {record.product_slug}")
            retailer_id = retailers.get(record.retailer_slug)
            if retailer_id is None:
                raise NotFoundError(f"Unknown retailer slug: {record.retailer_slug}")

            incoming: dict[str, Any] = {
                "product_id": product_id,
                "retailer_id": retailer_id,
                "price_cents": record.price_cents,
                "currency": record.currency,
                "url": record.url,
                "affiliate_url": record.affiliate_url,
                "in_stock": record.in_stock,
            }
            if record.last_checked_at is not None:
                incoming["last_checked_at"] = record.last_checked_at

            mapping = mappings.get(item.entity.id)
            keys = OfferKeys(None, product_id, retailer_id)
            match = self._resolve(CanonicalType.OFFER, matcher, keys, mapping, rows)
            previous = rows.get(match.canonical_id) if match.canonical_id else None
            if previous is not None:
                touched_products.add(previous.product_id)

            row, merge = self._upsert_canonical(
                CanonicalType.OFFER, rows, match, incoming, overrides, summary.offers
            )
            touched_products.add(row.product_id)
            matcher.add(OfferKeys(row.id, row.product_id, row.retailer_id))
            self._write_mapping(
                item.entity.id, CanonicalType.OFFER, row.id, match, merge, mapping, summary
            )

        return touched_products
