"""
Scheduler Module
================

Turns each active source with a schedule interval into at most one queued
job per interval window. The idempotency key carries the time bucket, so
calling run() more often than the interval (a once-a-minute cron, say)
only produces deduped enqueues.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.schema import ScheduleConfig
from catalog_ingest.db.models_ingestion import IngestionSourceDB
from catalog_ingest.ingestion.job_queue import JobQueue

logger = logging.getLogger(__name__)

DEFAULT_LIMIT_SOURCES = 50


def time_bucket(now: datetime, every_minutes: int) -> int:
    """Index of the interval window containing now (epoch based)."""
    now_ms = int(now.timestamp() * 1000)
    return now_ms // (every_minutes * 60_000)


def idempotency_key(source_slug: str, prefix: str | None, bucket: int) -> str:
    return f"{prefix or f'schedule:{source_slug}'}:{bucket}"


@dataclass
class SchedulerStats:
    """Counters for one scheduler pass."""

    scanned: int = 0
    enqueued: int = 0
    deduped: int = 0
    skipped: int = 0
    errors: int = 0
    job_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scanned": self.scanned,
            "enqueued": self.enqueued,
            "deduped": self.deduped,
            "skipped": self.skipped,
            "errors": self.errors,
            "jobIds": self.job_ids,
        }


class Scheduler:
    """
    Enqueue recurring jobs for scheduled sources.

    Example:
        stats = Scheduler(session).run()
        print(stats.enqueued, stats.deduped)
    """

    def __init__(self, session: Session, queue: JobQueue | None = None) -> None:
        self.session = session
        self.queue = queue or JobQueue(session)

    def due_sources(self, limit_sources: int) -> list[IngestionSourceDB]:
        """Active sources with an interval, by slug."""
        return list(
            self.session.execute(
                select(IngestionSourceDB)
                .where(
                    IngestionSourceDB.active.is_(True),
                    IngestionSourceDB.schedule_every_minutes.is_not(None),
                    IngestionSourceDB.schedule_every_minutes > 0,
                )
                .order_by(IngestionSourceDB.slug)
                .limit(limit_sources)
            ).scalars()
        )

    def run(
        self, now: datetime | None = None, limit_sources: int = DEFAULT_LIMIT_SOURCES
    ) -> SchedulerStats:
        """
        Scan scheduled sources and enqueue one job per source for the
        current window.

        A source whose config does not validate is skipped. Any other
        failure for a source is counted as an error and the scan goes on.
        """
        now = now or utc_now()
        stats = SchedulerStats()

        sources = [
            (source.slug, source.schedule_every_minutes, source.config_json)
            for source in self.due_sources(limit_sources)
        ]
        for slug, every_minutes, config_json in sources:
            stats.scanned += 1
            try:
                schedule = ScheduleConfig.model_validate(json.loads(config_json or "{}"))
            except (json.JSONDecodeError, PydanticValidationError) as e:
                stats.skipped += 1
                logger.warning(f"Skipping source {slug}: invalid schedule config: {e}")
                continue

            try:
                key = idempotency_key(
                    slug, schedule.idempotency_prefix, time_bucket(now, every_minutes)
                )
                result = self.queue.enqueue(
                    schedule.job_kind, schedule.job_payload, idempotency_key=key
                )
            except Exception as e:
                self.session.rollback()
                stats.errors += 1
                logger.error(f"Scheduling failed for source {slug}: {e}")
                continue

            if result.deduped:
                stats.deduped += 1
            else:
                stats.enqueued += 1
                stats.job_ids.append(result.id)

        logger.info(
            f"Scheduler pass: scanned={stats.scanned} enqueued={stats.enqueued} "
            f"deduped={stats.deduped} skipped={stats.skipped} errors={stats.errors}"
        )
        return stats
