"""SQLAlchemy ORM models for the ingestion pipeline.

These models define:
- IngestionSourceDB, IngestionRunDB (where data comes from, fetch cycles)
- IngestionEntityDB, IngestionSnapshotDB (per-source handles and captures)
- CanonicalMappingDB, NormalizationOverrideDB (identity and corrections)
- IngestionJobDB (durable work queue)
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from catalog_ingest.db.models import Base, _generate_uuid, _utc_now


class IngestionSourceDB(Base):
    """
    Declares where data originates and how often it is refreshed.

    config_json may carry a schedule block read by the scheduler:
    {"jobKind": ..., "jobPayload": {...}, "idempotencyPrefix": ...}
    """

    __tablename__ = "ingestion_sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    schedule_every_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    config_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    default_trust: Mapped[str] = mapped_column(String(30), default="unknown")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return f"<IngestionSourceDB(id={self.id}, slug='{self.slug}')>"


class IngestionRunDB(Base):
    """Brackets one fetch cycle of a source."""

    __tablename__ = "ingestion_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ingestion_sources.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default="running", index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stats_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    error: Mapped[str | None] = mapped_column(Text, nullable=True)


class IngestionEntityDB(Base):
    """
    Per-source handle for one external thing, tracked across fetches.

    Never hard-deleted; deactivated instead.
    """

    __tablename__ = "ingestion_entities"
    __table_args__ = (
        UniqueConstraint(
            "source_id", "entity_type", "source_entity_id", name="uq_ingestion_entities_key"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ingestion_sources.id"), nullable=False, index=True
    )
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    source_entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    meta_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return (
            f"<IngestionEntityDB(id={self.id}, type='{self.entity_type}', "
            f"source_entity_id='{self.source_entity_id}')>"
        )


class IngestionSnapshotDB(Base):
    """
    Immutable, content-addressed capture of one entity.

    Unique per (entity_id, content_hash): identical payloads never
    produce a second row.
    """

    __tablename__ = "ingestion_entity_snapshots"
    __table_args__ = (
        UniqueConstraint("entity_id", "content_hash", name="uq_snapshots_entity_hash"),
        Index("ix_snapshots_entity_fetched", "entity_id", "fetched_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    entity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ingestion_entities.id"), nullable=False
    )
    run_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("ingestion_runs.id"), nullable=True, index=True
    )
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    raw_json: Mapped[str] = mapped_column(Text, nullable=False)
    extracted_json: Mapped[str] = mapped_column(Text, default="{}")  # fields with trust
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    trust_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


class CanonicalMappingDB(Base):
    """
    Link from one ingestion entity to its canonical row.

    notes_json records field winners: {"winnerByField": {path: {...}}}.
    """

    __tablename__ = "canonical_entity_mappings"
    __table_args__ = (Index("ix_mappings_canonical", "canonical_type", "canonical_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    entity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ingestion_entities.id"), nullable=False, unique=True
    )
    canonical_type: Mapped[str] = mapped_column(String(20), nullable=False)
    canonical_id: Mapped[str] = mapped_column(String(36), nullable=False)
    match_method: Mapped[str] = mapped_column(String(50), nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, default=0)
    notes_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


class NormalizationOverrideDB(Base):
    """Admin-authored correction for one canonical field."""

    __tablename__ = "normalization_overrides"
    __table_args__ = (
        UniqueConstraint(
            "canonical_type", "canonical_id", "field_path", name="uq_overrides_field"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    canonical_type: Mapped[str] = mapped_column(String(20), nullable=False)
    canonical_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    field_path: Mapped[str] = mapped_column(String(200), nullable=False)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_by_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_by_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


class IngestionJobDB(Base):
    """Durable queue row. Mutated only by claim, success and failure transitions."""

    __tablename__ = "ingestion_jobs"
    __table_args__ = (
        Index("ix_jobs_claim", "status", "run_after", "priority"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    kind: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    payload_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="queued")
    run_after: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=5)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return f"<IngestionJobDB(id={self.id}, kind='{self.kind}', status='{self.status}')>"
