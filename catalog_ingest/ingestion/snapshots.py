"""
Snapshot Ingestor
=================

Writes immutable, content-addressed snapshots of raw source payloads.

For each call the ingestion entity (source, type, source entity id) is
upserted, the payload is canonicalized and hashed, and a snapshot row is
inserted unless one with the same hash already exists for that entity.
Every leaf of the payload is recorded with its trust level and provenance.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.enums import EntityType
from catalog_ingest.core.errors import NotFoundError, ValidationError
from catalog_ingest.db.models import _generate_uuid
from catalog_ingest.db.models_ingestion import (
    IngestionEntityDB,
    IngestionSnapshotDB,
    IngestionSourceDB,
)
from catalog_ingest.db.upsert import dialect_insert
from catalog_ingest.ingestion.hashing import content_hash, stable_json_dumps

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Outcome of ingesting one payload."""

    entity_id: str
    snapshot_id: str
    snapshot_created: bool
    content_hash: str


def flatten_fields(
    payload: dict[str, Any],
    source_slug: str,
    trust: str,
    field_trust: dict[str, str] | None = None,
    prefix: str = "",
) -> dict[str, dict[str, Any]]:
    """
    Flatten a payload into dotted field paths with trust and provenance.

    Nested objects are expanded; lists and scalars (including None) are
    leaves. Lists are stored whole.

    Returns:
        {"specs.volume_gallons": {"value": 20, "trust": "manual",
                                  "provenance": {"source": ..., "fieldPath": ...}}}
    """
    fields: dict[str, dict[str, Any]] = {}
    for key, value in payload.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            fields.update(flatten_fields(value, source_slug, trust, field_trust, path))
            continue
        fields[path] = {
            "value": value,
            "trust": (field_trust or {}).get(path, trust),
            "provenance": {"source": source_slug, "fieldPath": path},
        }
    return fields


class SnapshotIngestor:
    """
    Idempotent snapshot writer.

    Example:
        ingestor = SnapshotIngestor(session)
        result = ingestor.ingest(source.id, run.id, EntityType.PRODUCT, "tank-a", payload)
        if not result.snapshot_created:
            ...  # identical payload already captured
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._sources: dict[str, IngestionSourceDB] = {}

    def _get_source(self, source_id: str) -> IngestionSourceDB:
        source = self._sources.get(source_id)
        if source is None:
            source = self.session.get(IngestionSourceDB, source_id)
            if source is None:
                raise NotFoundError(f"Ingestion source not found: {source_id}")
            self._sources[source_id] = source
        return source

    def upsert_entity(
        self,
        source_id: str,
        entity_type: EntityType,
        source_entity_id: str,
        url: str | None = None,
        meta: dict[str, Any] | None = None,
        seen_at: datetime | None = None,
    ) -> str:
        """
        Create the ingestion entity on first sight, else refresh it.

        Returns:
            The entity id
        """
        now = seen_at or utc_now()
        table = IngestionEntityDB.__table__
        stmt = dialect_insert(self.session, table).values(
            id=_generate_uuid(),
            source_id=source_id,
            entity_type=entity_type.value,
            source_entity_id=source_entity_id,
            url=url,
            active=True,
            first_seen_at=now,
            last_seen_at=now,
            meta_json=json.dumps(meta or {}),
            created_at=now,
            updated_at=now,
        )
        refreshed: dict[str, Any] = {
            "last_seen_at": now,
            "active": True,
            "url": func.coalesce(stmt.excluded.url, table.c.url),
            "updated_at": now,
        }
        if meta is not None:
            refreshed["meta_json"] = stmt.excluded.meta_json
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_id", "entity_type", "source_entity_id"], set_=refreshed
        )
        self.session.execute(stmt)

        return self.session.execute(
            select(IngestionEntityDB.id).where(
                IngestionEntityDB.source_id == source_id,
                IngestionEntityDB.entity_type == entity_type.value,
                IngestionEntityDB.source_entity_id == source_entity_id,
            )
        ).scalar_one()

    def ingest(
        self,
        source_id: str,
        run_id: str | None,
        entity_type: EntityType | str,
        source_entity_id: str,
        raw_payload: dict[str, Any],
        url: str | None = None,
        *,
        fetched_at: datetime | None = None,
        meta: dict[str, Any] | None = None,
        field_trust: dict[str, str] | None = None,
    ) -> IngestResult:
        """
        Ingest one raw payload for an external entity.

        Args:
            source_id: Ingestion source id
            run_id: Run bracketing this fetch (optional)
            entity_type: product, plant or offer
            source_entity_id: The source's own identifier for the thing
            raw_payload: Raw payload (JSON object)
            url: Where the payload was fetched from
            fetched_at: Capture time (defaults to now)
            meta: Entity meta to store on the ingestion entity
            field_trust: Per-path trust levels overriding the source default

        Returns:
            IngestResult; snapshot_created is False when an identical payload
            was already captured for this entity.

        Raises:
            ValidationError: If the payload is not an object or ids are blank
            NotFoundError: If the source does not exist
        """
        if not isinstance(raw_payload, dict):
            raise ValidationError("Snapshot payload must be a JSON object")
        if not source_entity_id:
            raise ValidationError("source_entity_id is required")
        entity_type = EntityType(entity_type)

        source = self._get_source(source_id)
        now = fetched_at or utc_now()
        entity_id = self.upsert_entity(source_id, entity_type, source_entity_id, url, meta, now)

        digest = content_hash(raw_payload)
        extracted = {
            "fields": flatten_fields(raw_payload, source.slug, source.default_trust, field_trust),
            "meta": {
                "source": source.slug,
                "observedAt": now.isoformat(),
                "entityType": entity_type.value,
                "sourceEntityId": source_entity_id,
            },
        }
        trust_map = {
            "default": source.default_trust,
            "fields": {path: leaf["trust"] for path, leaf in extracted["fields"].items()},
        }

        new_id = _generate_uuid()
        stmt = (
            dialect_insert(self.session, IngestionSnapshotDB.__table__)
            .values(
                id=new_id,
                entity_id=entity_id,
                run_id=run_id,
                fetched_at=now,
                raw_json=stable_json_dumps(raw_payload),
                extracted_json=stable_json_dumps(extracted),
                content_hash=digest,
                trust_json=stable_json_dumps(trust_map),
                created_at=utc_now(),
            )
            .on_conflict_do_nothing(index_elements=["entity_id", "content_hash"])
        )
        self.session.execute(stmt)

        snapshot_id = self.session.execute(
            select(IngestionSnapshotDB.id).where(
                IngestionSnapshotDB.entity_id == entity_id,
                IngestionSnapshotDB.content_hash == digest,
            )
        ).scalar_one()
        created = snapshot_id == new_id
        if created:
            logger.debug(f"Snapshot {snapshot_id} created for {entity_type.value}:{source_entity_id}")
        return IngestResult(
            entity_id=entity_id,
            snapshot_id=snapshot_id,
            snapshot_created=created,
            content_hash=digest,
        )
