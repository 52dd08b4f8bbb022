"""Ingestion sources and the runs that bracket their fetch cycles."""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.enums import RunStatus, TrustLevel
from catalog_ingest.core.errors import NotFoundError
from catalog_ingest.db.models import _generate_uuid
from catalog_ingest.db.models_ingestion import IngestionRunDB, IngestionSourceDB
from catalog_ingest.db.upsert import dialect_insert
from catalog_ingest.ingestion.registry import SourceDefinition

logger = logging.getLogger(__name__)

MANUAL_SEED_SOURCE = SourceDefinition(
    slug="manual_seed",
    name="Manual seed files",
    kind="manual_seed",
    default_trust=TrustLevel.MANUAL.value,
)

OFFERS_HEAD_SOURCE = SourceDefinition(
    slug="offers-head",
    name="Offer availability (HEAD)",
    kind="offers_head",
    default_trust=TrustLevel.RETAILER.value,
    schedule_every_minutes=60,
    config={
        "jobKind": "offers.head_refresh.bulk",
        "jobPayload": {"olderThanDays": 2, "limit": 30, "timeoutMs": 6000},
    },
)

OFFERS_DETAIL_SOURCE = SourceDefinition(
    slug="offers-detail",
    name="Offer price and stock (detail)",
    kind="offers_detail",
    default_trust=TrustLevel.RETAILER.value,
    schedule_every_minutes=120,
    config={
        "jobKind": "offers.detail_refresh.bulk",
        "jobPayload": {"olderThanHours": 20, "limit": 30, "timeoutMs": 12000},
    },
)


def ensure_source(
    session: Session, definition: SourceDefinition, update_existing: bool = False
) -> IngestionSourceDB:
    """
    Upsert an ingestion source by slug.

    Args:
        session: Database session
        definition: Declared source
        update_existing: Overwrite name/kind/trust/schedule/config of an
            existing row. When False an existing row is left as is.

    Returns:
        The source row
    """
    now = utc_now()
    values = {
        "name": definition.name,
        "kind": definition.kind,
        "schedule_every_minutes": definition.schedule_every_minutes,
        "config_json": json.dumps(definition.config),
        "active": definition.active,
        "default_trust": definition.default_trust,
    }
    stmt = dialect_insert(session, IngestionSourceDB.__table__).values(
        id=_generate_uuid(), slug=definition.slug, created_at=now, updated_at=now, **values
    )
    if update_existing:
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"], set_={**values, "updated_at": now}
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=["slug"])
    session.execute(stmt)

    return session.execute(
        select(IngestionSourceDB)
        .where(IngestionSourceDB.slug == definition.slug)
        .execution_options(populate_existing=True)
    ).scalar_one()


def get_source_by_slug(session: Session, slug: str) -> IngestionSourceDB:
    """Load a source by slug, raising NotFoundError if missing."""
    source = session.execute(
        select(IngestionSourceDB).where(IngestionSourceDB.slug == slug)
    ).scalar_one_or_none()
    if source is None:
        raise NotFoundError(f"Ingestion source not found: {slug}")
    return source


def start_run(session: Session, source_id: str) -> IngestionRunDB:
    """Open a running ingestion run for a source."""
    run = IngestionRunDB(
        source_id=source_id,
        status=RunStatus.RUNNING.value,
        started_at=utc_now(),
        stats_json="{}",
    )
    session.add(run)
    session.flush()
    return run


def finish_run(
    session: Session,
    run_id: str,
    status: RunStatus,
    stats: dict[str, Any] | None = None,
    error: str | None = None,
) -> IngestionRunDB:
    """Close an ingestion run with its final status and stats."""
    run = session.get(IngestionRunDB, run_id)
    if run is None:
        raise NotFoundError(f"Ingestion run not found: {run_id}")
    run.status = status.value
    run.finished_at = utc_now()
    run.stats_json = json.dumps(stats or {})
    run.error = error
    session.flush()
    return run
