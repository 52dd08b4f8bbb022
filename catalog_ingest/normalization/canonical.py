"""Canonical table registry, field access and mapping upserts."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.enums import CanonicalType
from catalog_ingest.core.errors import NotFoundError
from catalog_ingest.db.models import Base, OfferDB, PlantDB, ProductDB, _generate_uuid
from catalog_ingest.db.models_ingestion import CanonicalMappingDB
from catalog_ingest.db.upsert import dialect_insert

CANONICAL_MODELS: dict[CanonicalType, type[Base]] = {
    CanonicalType.PRODUCT: ProductDB,
    CanonicalType.PLANT: PlantDB,
    CanonicalType.OFFER: OfferDB,
}

# Fields stored as JSON text in a "<name>_json" column.
JSON_FIELDS: dict[CanonicalType, frozenset[str]] = {
    CanonicalType.PRODUCT: frozenset({"image_urls", "specs", "meta"}),
    CanonicalType.PLANT: frozenset({"image_urls", "compatible_livestock", "sources"}),
    CanonicalType.OFFER: frozenset(),
}

IMAGE_FIELDS = ("image_url", "image_urls")

_SYSTEM_COLUMNS = {"id", "created_at", "updated_at"}


def canonical_field_names(canonical_type: CanonicalType) -> frozenset[str]:
    """Field names an override may target at its root."""
    model = CANONICAL_MODELS[canonical_type]
    names = set()
    for column in model.__table__.columns:
        if column.name in _SYSTEM_COLUMNS:
            continue
        name = column.name
        if name.endswith("_json") and name[: -len("_json")] in JSON_FIELDS[canonical_type]:
            name = name[: -len("_json")]
        names.add(name)
    return frozenset(names)


def read_fields(row: Any, canonical_type: CanonicalType) -> dict[str, Any]:
    """Current field values of a canonical row, JSON columns decoded."""
    json_fields = JSON_FIELDS[canonical_type]
    values: dict[str, Any] = {}
    for name in canonical_field_names(canonical_type):
        if name in json_fields:
            values[name] = json.loads(getattr(row, f"{name}_json") or "null")
        else:
            values[name] = getattr(row, name)
    return values


def write_fields(row: Any, canonical_type: CanonicalType, values: dict[str, Any]) -> None:
    """Assign field values to a canonical row, JSON columns encoded."""
    json_fields = JSON_FIELDS[canonical_type]
    for name, value in values.items():
        if name in json_fields:
            setattr(row, f"{name}_json", json.dumps(value, default=str))
        else:
            setattr(row, name, value)


def get_canonical_row(session: Session, canonical_type: CanonicalType, canonical_id: str) -> Any:
    """Load a canonical row, raising NotFoundError if it does not exist."""
    model = CANONICAL_MODELS[CanonicalType(canonical_type)]
    row = session.get(model, canonical_id)
    if row is None:
        raise NotFoundError(f"Canonical {CanonicalType(canonical_type).value} not found: {canonical_id}")
    return row


def upsert_mapping(
    session: Session,
    entity_id: str,
    canonical_type: CanonicalType,
    canonical_id: str,
    match_method: str,
    confidence: int,
    notes: dict[str, Any] | None = None,
) -> None:
    """Insert or replace the single mapping of an ingestion entity."""
    now = utc_now()
    values = {
        "canonical_type": canonical_type.value,
        "canonical_id": canonical_id,
        "match_method": match_method,
        "confidence": max(0, min(100, int(confidence))),
        "notes_json": json.dumps(notes) if notes is not None else None,
        "updated_at": now,
    }
    stmt = dialect_insert(session, CanonicalMappingDB.__table__).values(
        id=_generate_uuid(), entity_id=entity_id, created_at=now, **values
    )
    stmt = stmt.on_conflict_do_update(index_elements=["entity_id"], set_=values)
    session.execute(stmt)


def get_mapping(session: Session, entity_id: str) -> CanonicalMappingDB | None:
    """Mapping of an ingestion entity, if any."""
    return session.execute(
        select(CanonicalMappingDB)
        .where(CanonicalMappingDB.entity_id == entity_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def mapping_notes(mapping: CanonicalMappingDB | None) -> dict[str, Any] | None:
    """Decoded mapping notes."""
    if mapping is None or not mapping.notes_json:
        return None
    return json.loads(mapping.notes_json)
