"""
Override-Aware Field Merge
==========================

Precedence for each canonical field during normalization:

1. An admin override on (canonical type, canonical id, field path) wins.
2. Otherwise the freshly ingested value wins, except that image fields
   never regress: a payload without image_url / image_urls keeps the
   images already on the canonical row.

Override winners are recorded on the mapping notes so each field can be
explained later.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import as_utc
from catalog_ingest.core.enums import CanonicalType
from catalog_ingest.core.errors import ValidationError
from catalog_ingest.db.models_ingestion import NormalizationOverrideDB
from catalog_ingest.normalization.canonical import IMAGE_FIELDS

logger = logging.getLogger(__name__)

FIELD_PATH_PATTERN = re.compile(r"^[A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)*$")
MAX_FIELD_PATH_LENGTH = 200

OVERRIDE_NOTES_SOURCE = "normalization_overrides"
DEFAULT_OVERRIDE_REASON = "normalization_override"


def validate_field_path(field_path: str) -> str:
    """
    Check a dotted field path such as "specs.volume_gallons".

    Raises:
        ValidationError: If the path is empty, too long or malformed
    """
    path = (field_path or "").strip()
    if not path:
        raise ValidationError("Field path is required")
    if len(path) > MAX_FIELD_PATH_LENGTH:
        raise ValidationError(f"Field path must be at most {MAX_FIELD_PATH_LENGTH} characters")
    if not FIELD_PATH_PATTERN.match(path):
        raise ValidationError(f"Invalid field path: {field_path!r}")
    return path


def set_value_at_path(values: dict[str, Any], field_path: str, value: Any) -> bool:
    """
    Set a value at a dotted path, creating intermediate objects.

    The root key must already exist in values, and hold an object when the
    path is nested; otherwise nothing is set and False is returned.
    """
    parts = field_path.split(".")
    if parts[0] not in values:
        return False
    if len(parts) > 1 and not isinstance(values[parts[0]], dict):
        return False

    current = values
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = copy.deepcopy(value)
    return True


@dataclass
class ActiveOverride:
    """Override as applied during a merge."""

    id: str
    field_path: str
    value: Any
    reason: str
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: NormalizationOverrideDB) -> ActiveOverride:
        return cls(
            id=row.id,
            field_path=row.field_path,
            value=json.loads(row.value_json),
            reason=row.reason,
            updated_at=as_utc(row.updated_at),
        )


def load_overrides(
    session: Session,
    canonical_type: CanonicalType,
    canonical_ids: Iterable[str] | None = None,
) -> dict[str, list[ActiveOverride]]:
    """
    Overrides grouped by canonical id, each list ordered by field path.

    With canonical_ids=None every override of the type is loaded.
    """
    grouped: dict[str, list[ActiveOverride]] = defaultdict(list)
    stmt = (
        select(NormalizationOverrideDB)
        .where(NormalizationOverrideDB.canonical_type == canonical_type.value)
        .order_by(NormalizationOverrideDB.canonical_id, NormalizationOverrideDB.field_path)
    )
    if canonical_ids is not None:
        ids = sorted(set(canonical_ids))
        if not ids:
            return grouped
        stmt = stmt.where(NormalizationOverrideDB.canonical_id.in_(ids))
    rows = session.execute(stmt).scalars()
    for row in rows:
        grouped[row.canonical_id].append(ActiveOverride.from_row(row))
    return grouped


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


@dataclass
class MergeResult:
    """Merged canonical values plus the fields won by overrides."""

    values: dict[str, Any]
    winner_by_field: dict[str, dict[str, Any]] = field(default_factory=dict)

    def notes(self) -> dict[str, Any] | None:
        """Explainability notes for the mapping, or None when no override applied."""
        if not self.winner_by_field:
            return None
        return {
            "version": 1,
            "source": OVERRIDE_NOTES_SOURCE,
            "winnerByField": self.winner_by_field,
        }


def merge_fields(
    incoming: dict[str, Any],
    existing: dict[str, Any] | None = None,
    overrides: Iterable[ActiveOverride] = (),
) -> MergeResult:
    """
    Merge freshly ingested values with the current row and its overrides.

    Args:
        incoming: Values derived from the latest snapshot
        existing: Current canonical values (None for a new row)
        overrides: Overrides on this canonical row

    Returns:
        MergeResult with the values to write
    """
    values = copy.deepcopy(incoming)

    if existing is not None:
        for image_field in IMAGE_FIELDS:
            if image_field in values and _is_empty(values[image_field]):
                if not _is_empty(existing.get(image_field)):
                    values[image_field] = copy.deepcopy(existing[image_field])

    result = MergeResult(values=values)
    for override in sorted(overrides, key=lambda o: o.field_path):
        if not set_value_at_path(values, override.field_path, override.value):
            logger.warning(
                f"Override {override.id} targets unknown field '{override.field_path}', skipped"
            )
            continue
        result.winner_by_field[override.field_path] = {
            "winner": "override",
            "reason": override.reason or DEFAULT_OVERRIDE_REASON,
            "overrideId": override.id,
            "updatedAt": override.updated_at.isoformat() if override.updated_at else None,
        }
    return result
