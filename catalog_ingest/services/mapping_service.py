"""Manual linking of ingestion entities to canonical rows."""

import logging
from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import Session

from catalog_ingest.core.enums import CanonicalType, MatchMethod
from catalog_ingest.core.errors import NotFoundError, ValidationError
from catalog_ingest.db.models_ingestion import CanonicalMappingDB, IngestionEntityDB
from catalog_ingest.normalization.canonical import (
    get_canonical_row,
    get_mapping,
    mapping_notes,
    upsert_mapping,
)
from catalog_ingest.services.audit_log import log_admin_action

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500
TARGET_TYPE = "ingestion_entity"


def _mapping_summary(mapping: CanonicalMappingDB | None) -> dict[str, Any] | None:
    if mapping is None:
        return None
    return {
        "canonicalType": mapping.canonical_type,
        "canonicalId": mapping.canonical_id,
        "matchMethod": mapping.match_method,
        "confidence": mapping.confidence,
    }


class MappingService:
    """Admin operations on canonical entity mappings."""

    def __init__(self, session: Session):
        self.session = session

    def _get_entity(self, entity_id: str) -> IngestionEntityDB:
        entity = self.session.get(IngestionEntityDB, entity_id)
        if entity is None:
            raise NotFoundError(f"Ingestion entity not found: {entity_id}")
        return entity

    def map_entity(
        self,
        entity_id: str,
        canonical_type: CanonicalType | str,
        canonical_id: str,
        actor_user_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        """
        Point an ingestion entity at a canonical row.

        The mapping becomes admin_manual with confidence 100. Normalization
        reuses an existing mapping, so the link sticks across later passes.

        Raises:
            NotFoundError: The entity or the canonical row does not exist
            ValidationError: The entity type does not match the canonical type
        """
        entity = self._get_entity(entity_id)
        try:
            ctype = CanonicalType(canonical_type)
        except ValueError as e:
            raise ValidationError(f"Unsupported canonical type: {canonical_type}") from e
        if entity.entity_type != ctype.value:
            raise ValidationError(
                f"Canonical type mismatch for entity type '{entity.entity_type}'"
            )
        reason_text = (reason or "").strip() or None
        if reason_text and len(reason_text) > MAX_REASON_LENGTH:
            raise ValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters")
        get_canonical_row(self.session, ctype, canonical_id)

        existing = get_mapping(self.session, entity_id)
        previous = _mapping_summary(existing)
        if reason_text:
            notes = {"source": MatchMethod.ADMIN_MANUAL.value, "reason": reason_text}
        else:
            notes = mapping_notes(existing)

        upsert_mapping(
            self.session,
            entity_id=entity_id,
            canonical_type=ctype,
            canonical_id=canonical_id,
            match_method=MatchMethod.ADMIN_MANUAL.value,
            confidence=100,
            notes=notes,
        )
        log_admin_action(
            self.session,
            action="ingestion.mapping.map",
            target_type=TARGET_TYPE,
            target_id=entity_id,
            actor_user_id=actor_user_id,
            meta={
                "entityType": entity.entity_type,
                "sourceEntityId": entity.source_entity_id,
                "canonicalType": ctype.value,
                "canonicalId": canonical_id,
                "reason": reason_text,
                "previousMapping": previous,
            },
        )
        self.session.commit()
        logger.info(f"Mapped entity {entity_id} to {ctype.value}:{canonical_id}")

    def unmap_entity(self, entity_id: str, actor_user_id: str | None = None) -> None:
        """
        Remove an entity's mapping. The next normalization pass resolves it again.

        Raises:
            NotFoundError: The entity or its mapping does not exist
        """
        entity = self._get_entity(entity_id)
        mapping = get_mapping(self.session, entity_id)
        if mapping is None:
            raise NotFoundError(f"Mapping not found for ingestion entity: {entity_id}")

        previous = _mapping_summary(mapping)
        self.session.execute(
            delete(CanonicalMappingDB).where(CanonicalMappingDB.entity_id == entity_id)
        )
        log_admin_action(
            self.session,
            action="ingestion.mapping.unmap",
            target_type=TARGET_TYPE,
            target_id=entity_id,
            actor_user_id=actor_user_id,
            meta={
                "entityType": entity.entity_type,
                "sourceEntityId": entity.source_entity_id,
                "previousMapping": previous,
            },
        )
        self.session.commit()
        logger.info(f"Unmapped entity {entity_id}")
