"""Override service for admin-authored field corrections.

This service provides business logic for:
- Creating, updating and deleting normalization overrides
- Listing overrides for a canonical row or type
- Writing one audit row per mutation, in the same transaction
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import as_utc, utc_now
from catalog_ingest.core.enums import CanonicalType
from catalog_ingest.core.errors import ConflictError, NotFoundError, ValidationError
from catalog_ingest.db.models_ingestion import NormalizationOverrideDB
from catalog_ingest.normalization.canonical import (
    JSON_FIELDS,
    canonical_field_names,
    get_canonical_row,
)
from catalog_ingest.normalization.overrides import validate_field_path
from catalog_ingest.services.audit_log import log_admin_action

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500
VALUE_PREVIEW_LENGTH = 400
TARGET_TYPE = "normalization_override"


def value_preview(value: Any) -> str:
    """Compact JSON rendering of a value for audit meta, truncated."""
    try:
        text = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return "[unserializable]"
    if len(text) <= VALUE_PREVIEW_LENGTH:
        return text
    return text[:VALUE_PREVIEW_LENGTH] + "..."


def _require_actor(actor_user_id: str | None) -> str:
    actor = (actor_user_id or "").strip()
    if not actor:
        raise ValidationError("Actor user id is required")
    return actor


def _require_reason(reason: str | None) -> str:
    text = (reason or "").strip()
    if not text:
        raise ValidationError("Reason is required")
    if len(text) > MAX_REASON_LENGTH:
        raise ValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters")
    return text


@dataclass
class Override:
    """An override as returned to callers."""

    id: str
    canonical_type: str
    canonical_id: str
    field_path: str
    value: Any
    reason: str
    created_by_user_id: str | None
    updated_by_user_id: str | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: NormalizationOverrideDB) -> "Override":
        return cls(
            id=row.id,
            canonical_type=row.canonical_type,
            canonical_id=row.canonical_id,
            field_path=row.field_path,
            value=json.loads(row.value_json),
            reason=row.reason,
            created_by_user_id=row.created_by_user_id,
            updated_by_user_id=row.updated_by_user_id,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "canonicalType": self.canonical_type,
            "canonicalId": self.canonical_id,
            "fieldPath": self.field_path,
            "value": self.value,
            "reason": self.reason,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class OverrideService:
    """Service for managing normalization overrides."""

    def __init__(self, session: Session):
        self.session = session

    def _validate_target(
        self, canonical_type: CanonicalType | str, canonical_id: str, field_path: str
    ) -> tuple[CanonicalType, str]:
        try:
            ctype = CanonicalType(canonical_type)
        except ValueError as e:
            raise ValidationError(f"Unsupported canonical type: {canonical_type}") from e
        path = validate_field_path(field_path)
        root = path.split(".")[0]
        if root not in canonical_field_names(ctype):
            raise ValidationError(f"Unknown {ctype.value} field: {root}")
        if root != path and root not in JSON_FIELDS[ctype]:
            raise ValidationError(f"{ctype.value} field {root} has no nested values: {path}")
        get_canonical_row(self.session, ctype, canonical_id)
        return ctype, path

    def _find_duplicate(
        self, ctype: CanonicalType, canonical_id: str, path: str, exclude_id: str | None = None
    ) -> str | None:
        stmt = select(NormalizationOverrideDB.id).where(
            NormalizationOverrideDB.canonical_type == ctype.value,
            NormalizationOverrideDB.canonical_id == canonical_id,
            NormalizationOverrideDB.field_path == path,
        )
        if exclude_id is not None:
            stmt = stmt.where(NormalizationOverrideDB.id != exclude_id)
        return self.session.execute(stmt.limit(1)).scalar_one_or_none()

    def _get_row(self, override_id: str) -> NormalizationOverrideDB:
        row = self.session.get(NormalizationOverrideDB, override_id)
        if row is None:
            raise NotFoundError(f"Normalization override not found: {override_id}")
        return row

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ConflictError(
                "An override already exists for this canonical entity and field path"
            ) from e

    def get(self, override_id: str) -> Override:
        """Get an override by id."""
        return Override.from_row(self._get_row(override_id))

    def list_overrides(
        self,
        canonical_type: CanonicalType | str | None = None,
        canonical_id: str | None = None,
        limit: int = 200,
    ) -> list[Override]:
        """Overrides, newest first, optionally filtered by target."""
        stmt = select(NormalizationOverrideDB)
        if canonical_type is not None:
            stmt = stmt.where(
                NormalizationOverrideDB.canonical_type == CanonicalType(canonical_type).value
            )
        if canonical_id is not None:
            stmt = stmt.where(NormalizationOverrideDB.canonical_id == canonical_id)
        stmt = stmt.order_by(
            NormalizationOverrideDB.updated_at.desc(), NormalizationOverrideDB.id
        ).limit(limit)
        return [Override.from_row(row) for row in self.session.execute(stmt).scalars()]

    def create_override(
        self,
        canonical_type: CanonicalType | str,
        canonical_id: str,
        field_path: str,
        value: Any,
        reason: str,
        actor_user_id: str,
    ) -> Override:
        """
        Create an override for one canonical field.

        Args:
            canonical_type: product, plant or offer
            canonical_id: Id of the canonical row (must exist)
            field_path: Dotted path whose root is a field of that row
            value: Any JSON-serializable value
            reason: Why the correction is needed
            actor_user_id: Admin making the change

        Raises:
            ValidationError: Missing actor or reason, bad path or type
            NotFoundError: The canonical row does not exist
            ConflictError: An override for the same field already exists
        """
        actor = _require_actor(actor_user_id)
        reason_text = _require_reason(reason)
        ctype, path = self._validate_target(canonical_type, canonical_id, field_path)
        if self._find_duplicate(ctype, canonical_id, path):
            raise ConflictError(
                "An override already exists for this canonical entity and field path"
            )

        now = utc_now()
        row = NormalizationOverrideDB(
            canonical_type=ctype.value,
            canonical_id=canonical_id,
            field_path=path,
            value_json=json.dumps(value),
            reason=reason_text,
            created_by_user_id=actor,
            updated_by_user_id=actor,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise ConflictError(
                "An override already exists for this canonical entity and field path"
            ) from e

        log_admin_action(
            self.session,
            action="normalization.override.create",
            target_type=TARGET_TYPE,
            target_id=row.id,
            actor_user_id=actor,
            meta={
                "canonicalType": ctype.value,
                "canonicalId": canonical_id,
                "fieldPath": path,
                "reason": reason_text,
                "valuePreview": value_preview(value),
            },
        )
        self._commit()
        logger.info(f"Created override {row.id} on {ctype.value}:{canonical_id} {path}")
        return Override.from_row(row)

    def update_override(
        self,
        override_id: str,
        canonical_type: CanonicalType | str,
        canonical_id: str,
        field_path: str,
        value: Any,
        reason: str,
        actor_user_id: str,
    ) -> Override:
        """
        Replace target, value and reason of an existing override.

        Raises:
            ValidationError: Missing actor or reason, bad path or type
            NotFoundError: The override or the canonical row does not exist
            ConflictError: Another override already targets the same field
        """
        actor = _require_actor(actor_user_id)
        reason_text = _require_reason(reason)
        row = self._get_row(override_id)
        ctype, path = self._validate_target(canonical_type, canonical_id, field_path)
        if self._find_duplicate(ctype, canonical_id, path, exclude_id=override_id):
            raise ConflictError(
                "Another override already exists for this canonical entity and field path"
            )

        previous = {
            "canonicalType": row.canonical_type,
            "canonicalId": row.canonical_id,
            "fieldPath": row.field_path,
            "reason": row.reason,
            "valuePreview": value_preview(json.loads(row.value_json)),
        }
        row.canonical_type = ctype.value
        row.canonical_id = canonical_id
        row.field_path = path
        row.value_json = json.dumps(value)
        row.reason = reason_text
        row.updated_by_user_id = actor
        row.updated_at = utc_now()

        log_admin_action(
            self.session,
            action="normalization.override.update",
            target_type=TARGET_TYPE,
            target_id=row.id,
            actor_user_id=actor,
            meta={
                "canonicalType": ctype.value,
                "canonicalId": canonical_id,
                "fieldPath": path,
                "reason": reason_text,
                "valuePreview": value_preview(value),
                "previous": previous,
            },
        )
        self._commit()
        logger.info(f"Updated override {row.id}")
        return Override.from_row(row)

    def delete_override(self, override_id: str, actor_user_id: str) -> None:
        """
        Delete an override. The next normalization pass restores the ingested value.

        Raises:
            ValidationError: Missing actor
            NotFoundError: The override does not exist
        """
        actor = _require_actor(actor_user_id)
        row = self._get_row(override_id)
        meta = {
            "canonicalType": row.canonical_type,
            "canonicalId": row.canonical_id,
            "fieldPath": row.field_path,
            "reason": row.reason,
            "valuePreview": value_preview(json.loads(row.value_json)),
        }
        self.session.delete(row)
        log_admin_action(
            self.session,
            action="normalization.override.delete",
            target_type=TARGET_TYPE,
            target_id=override_id,
            actor_user_id=actor,
            meta=meta,
        )
        self.session.commit()
        logger.info(f"Deleted override {override_id}")
