"""Queue inspection and recovery operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import as_utc, utc_now
from catalog_ingest.core.enums import JobKind, JobStatus
from catalog_ingest.db.models_ingestion import IngestionJobDB
from catalog_ingest.ingestion.job_queue import JobQueue

logger = logging.getLogger(__name__)

STUCK_RUNNING_MINUTES = 45
STALE_QUEUED_MINUTES = 120
FRESHNESS_PRIORITY = 20


@dataclass
class QueueStats:
    """Snapshot of the job queue."""

    by_status: dict[str, int] = field(default_factory=dict)
    due_now: int = 0
    stale_queued: int = 0
    stuck_running: int = 0
    oldest_queued_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "byStatus": self.by_status,
            "dueNow": self.due_now,
            "staleQueued": self.stale_queued,
            "stuckRunning": self.stuck_running,
            "oldestQueuedAt": self.oldest_queued_at.isoformat() if self.oldest_queued_at else None,
        }


@dataclass
class ReclaimResult:
    requeued: int = 0
    failed: int = 0


class JobRecovery:
    """
    Operations for jobs the normal claim/finish cycle left behind.

    Example:
        recovery = JobRecovery(session)
        recovery.reclaim_stuck_running(older_than_minutes=45)
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def queue_stats(
        self,
        now: datetime | None = None,
        stale_queued_minutes: int = STALE_QUEUED_MINUTES,
        stuck_running_minutes: int = STUCK_RUNNING_MINUTES,
    ) -> QueueStats:
        """Count jobs per status plus those overdue or stuck."""
        now = now or utc_now()
        stats = QueueStats()

        for status, count in self.session.execute(
            select(IngestionJobDB.status, func.count()).group_by(IngestionJobDB.status)
        ):
            stats.by_status[status] = count
        for status in JobStatus:
            stats.by_status.setdefault(status.value, 0)

        queued = IngestionJobDB.status == JobStatus.QUEUED.value
        stats.due_now = self.session.execute(
            select(func.count()).where(queued, IngestionJobDB.run_after <= now)
        ).scalar_one()
        stats.stale_queued = self.session.execute(
            select(func.count()).where(
                queued, IngestionJobDB.run_after < now - timedelta(minutes=stale_queued_minutes)
            )
        ).scalar_one()
        stats.stuck_running = self.session.execute(
            select(func.count()).where(
                IngestionJobDB.status == JobStatus.RUNNING.value,
                IngestionJobDB.locked_at < now - timedelta(minutes=stuck_running_minutes),
            )
        ).scalar_one()
        stats.oldest_queued_at = as_utc(
            self.session.execute(select(func.min(IngestionJobDB.created_at)).where(queued)).scalar()
        )
        return stats

    def reclaim_stuck_running(
        self, older_than_minutes: int = STUCK_RUNNING_MINUTES, now: datetime | None = None
    ) -> ReclaimResult:
        """
        Release jobs whose worker stopped without finishing them.

        A running job locked longer than older_than_minutes goes back to
        queued, or to failed when its attempts are used up. The status and
        lock holder are re-checked in the UPDATE, so a worker finishing the
        job concurrently wins.
        """
        now = now or utc_now()
        cutoff = now - timedelta(minutes=older_than_minutes)
        stuck = list(
            self.session.execute(
                select(IngestionJobDB)
                .where(
                    IngestionJobDB.status == JobStatus.RUNNING.value,
                    IngestionJobDB.locked_at < cutoff,
                )
                .order_by(IngestionJobDB.locked_at)
            ).scalars()
        )

        result = ReclaimResult()
        for job in stuck:
            error = f"Lock held by {job.locked_by} expired after {older_than_minutes} minutes"
            exhausted = job.attempts >= job.max_attempts
            values: dict[str, Any] = {
                "locked_at": None,
                "locked_by": None,
                "last_error": error,
                "updated_at": now,
            }
            if exhausted:
                values.update(status=JobStatus.FAILED.value, finished_at=now)
            else:
                values.update(status=JobStatus.QUEUED.value, run_after=now)

            updated = self.session.execute(
                update(IngestionJobDB)
                .where(
                    IngestionJobDB.id == job.id,
                    IngestionJobDB.status == JobStatus.RUNNING.value,
                    IngestionJobDB.locked_by == job.locked_by,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                continue
            if exhausted:
                result.failed += 1
            else:
                result.requeued += 1
            logger.warning(f"Reclaimed stuck job {job.id} ({job.kind}): {error}")

        self.session.commit()
        return result

    def retry_failed(
        self, limit: int = 50, kind: str | None = None, now: datetime | None = None
    ) -> int:
        """Put failed jobs back in the queue with a fresh attempt budget."""
        now = now or utc_now()
        stmt = select(IngestionJobDB.id).where(IngestionJobDB.status == JobStatus.FAILED.value)
        if kind:
            stmt = stmt.where(IngestionJobDB.kind == kind)
        ids = list(
            self.session.execute(
                stmt.order_by(IngestionJobDB.finished_at.desc(), IngestionJobDB.id).limit(limit)
            ).scalars()
        )
        if not ids:
            return 0

        self.session.execute(
            update(IngestionJobDB)
            .where(IngestionJobDB.id.in_(ids), IngestionJobDB.status == JobStatus.FAILED.value)
            .values(
                status=JobStatus.QUEUED.value,
                attempts=0,
                run_after=now,
                finished_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        logger.info(f"Re-queued {len(ids)} failed jobs")
        return len(ids)

    def requeue_stale_queued(
        self,
        older_than_minutes: int = STALE_QUEUED_MINUTES,
        priority: int = FRESHNESS_PRIORITY,
        now: datetime | None = None,
    ) -> int:
        """
        Bump queued jobs that have been due for a long time.

        Overdue jobs get their priority raised to at least priority and
        run_after reset to now, so they are claimed ahead of fresh work.
        """
        now = now or utc_now()
        result = self.session.execute(
            update(IngestionJobDB)
            .where(
                IngestionJobDB.status == JobStatus.QUEUED.value,
                IngestionJobDB.run_after < now - timedelta(minutes=older_than_minutes),
                IngestionJobDB.priority < priority,
            )
            .values(priority=priority, run_after=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        if result.rowcount:
            logger.info(f"Bumped {result.rowcount} stale queued jobs to priority {priority}")
        return result.rowcount

    def enqueue_freshness_refresh(
        self, now: datetime | None = None, priority: int = FRESHNESS_PRIORITY
    ) -> list[str]:
        """
        Enqueue high-priority offer refresh jobs, at most once per hour.

        Returns:
            Ids of jobs created (empty when this hour's jobs already exist)
        """
        now = now or utc_now()
        hour = now.strftime("%Y%m%d%H")
        queue = JobQueue(self.session)
        created = []
        for kind in (JobKind.OFFERS_HEAD_REFRESH_BULK, JobKind.OFFERS_DETAIL_REFRESH_BULK):
            result = queue.enqueue(
                kind,
                {"olderThanHours": 12, "limit": 100},
                idempotency_key=f"ops:freshness:{kind.value}:{hour}",
                priority=priority,
            )
            if not result.deduped:
                created.append(result.id)
        return created
