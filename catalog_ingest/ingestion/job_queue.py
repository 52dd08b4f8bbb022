"""
Job Queue Module
================

Durable, prioritized, retryable work queue stored in the
ingestion_jobs table.

- enqueue is idempotent on idempotency_key (insert ... on conflict do nothing)
- claim_next hands each queued row to exactly one caller. PostgreSQL uses
  SELECT ... FOR UPDATE SKIP LOCKED; other stores use a compare-and-swap
  UPDATE guarded by status='queued'.
- mark_failure re-queues with capped exponential backoff until
  max_attempts is reached, then fails the job terminally.

Every operation commits its own transaction on the injected session.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import as_utc, utc_now
from catalog_ingest.core.enums import JobKind, JobStatus
from catalog_ingest.core.errors import NotFoundError
from catalog_ingest.core.schema import DEFAULT_MAX_ATTEMPTS, parse_job_payload
from catalog_ingest.db.models import _generate_uuid
from catalog_ingest.db.models_ingestion import IngestionJobDB
from catalog_ingest.db.upsert import dialect_insert, supports_skip_locked

logger = logging.getLogger(__name__)

MAX_BACKOFF_MINUTES = 60
MAX_ERROR_LENGTH = 4000


def backoff_minutes(attempts: int) -> int:
    """Delay before the next try: 1, 2, 4, ... minutes, capped at one hour."""
    return min(MAX_BACKOFF_MINUTES, 2 ** max(0, attempts - 1))


@dataclass
class EnqueueResult:
    """Outcome of an enqueue call."""

    id: str
    deduped: bool


@dataclass
class ClaimedJob:
    """Snapshot of a job row handed to a worker."""

    id: str
    kind: str
    payload: dict[str, Any]
    priority: int
    attempts: int
    max_attempts: int
    idempotency_key: str | None = None
    locked_by: str | None = None
    locked_at: datetime | None = None
    run_after: datetime | None = None

    @classmethod
    def from_row(cls, row: IngestionJobDB) -> ClaimedJob:
        return cls(
            id=row.id,
            kind=row.kind,
            payload=json.loads(row.payload_json or "{}"),
            priority=row.priority,
            attempts=row.attempts,
            max_attempts=row.max_attempts,
            idempotency_key=row.idempotency_key,
            locked_by=row.locked_by,
            locked_at=as_utc(row.locked_at),
            run_after=as_utc(row.run_after),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": self.payload,
            "priority": self.priority,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "idempotency_key": self.idempotency_key,
            "run_after": self.run_after.isoformat() if self.run_after else None,
        }


class JobQueue:
    """
    Store-backed job queue.

    Example:
        queue = JobQueue(session)
        queue.enqueue(JobKind.OFFERS_HEAD_REFRESH_BULK, {"limit": 10}, "schedule:x:1")
        job = queue.claim_next("worker-1")
    """

    def __init__(self, session: Session, claim_batch_size: int = 10) -> None:
        self.session = session
        self.claim_batch_size = claim_batch_size

    def enqueue(
        self,
        kind: str | JobKind,
        payload: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        priority: int = 0,
        run_after: datetime | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> EnqueueResult:
        """
        Insert a queued job.

        When idempotency_key matches an existing row nothing is written and
        the existing row's id is returned with deduped=True.

        Raises:
            ValidationError: If the kind is unknown or the payload is invalid
        """
        validated = parse_job_payload(kind, payload)
        job_kind = JobKind(kind)
        now = utc_now()
        new_id = _generate_uuid()

        stmt = dialect_insert(self.session, IngestionJobDB.__table__).values(
            id=new_id,
            kind=job_kind.value,
            payload_json=json.dumps(validated.to_wire()),
            idempotency_key=idempotency_key,
            priority=priority,
            status=JobStatus.QUEUED.value,
            run_after=run_after or now,
            attempts=0,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )
        if idempotency_key is not None:
            stmt = stmt.on_conflict_do_nothing(index_elements=["idempotency_key"])
        self.session.execute(stmt)

        job_id = new_id
        if idempotency_key is not None:
            job_id = self.session.execute(
                select(IngestionJobDB.id).where(IngestionJobDB.idempotency_key == idempotency_key)
            ).scalar_one()
        self.session.commit()

        deduped = job_id != new_id
        if deduped:
            logger.debug(f"Enqueue deduped on key {idempotency_key} (existing job {job_id})")
        else:
            logger.info(f"Enqueued job {job_id} ({job_kind.value}, priority={priority})")
        return EnqueueResult(id=job_id, deduped=deduped)

    def _eligible(self, now: datetime):
        return (
            select(IngestionJobDB)
            .where(
                IngestionJobDB.status == JobStatus.QUEUED.value,
                IngestionJobDB.run_after <= now,
            )
            .order_by(
                IngestionJobDB.priority.desc(),
                IngestionJobDB.run_after.asc(),
                IngestionJobDB.created_at.asc(),
                IngestionJobDB.id.asc(),
            )
        )

    def peek_next(self, now: datetime | None = None) -> ClaimedJob | None:
        """Return the job claim_next would take, without claiming it."""
        row = self.session.execute(self._eligible(now or utc_now()).limit(1)).scalar_one_or_none()
        return ClaimedJob.from_row(row) if row is not None else None

    def claim_next(self, worker_id: str, now: datetime | None = None) -> ClaimedJob | None:
        """
        Claim the highest-priority, earliest-due queued job.

        Concurrent callers never receive the same row; rows locked by
        another claimant are skipped rather than waited on.

        Args:
            worker_id: Identifier stamped into locked_by
            now: Clock override (tests)

        Returns:
            The claimed job, or None when nothing is eligible
        """
        now = now or utc_now()
        if supports_skip_locked(self.session):
            return self._claim_skip_locked(worker_id, now)
        return self._claim_compare_and_swap(worker_id, now)

    def _claim_skip_locked(self, worker_id: str, now: datetime) -> ClaimedJob | None:
        stmt = self._eligible(now).limit(1).with_for_update(skip_locked=True)
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            self.session.rollback()
            return None

        row.status = JobStatus.RUNNING.value
        row.locked_at = now
        row.locked_by = worker_id
        row.attempts = row.attempts + 1
        row.updated_at = now
        self.session.commit()
        return ClaimedJob.from_row(row)

    def _claim_compare_and_swap(self, worker_id: str, now: datetime) -> ClaimedJob | None:
        while True:
            candidate_ids = (
                self.session.execute(
                    self._eligible(now).with_only_columns(IngestionJobDB.id).limit(
                        self.claim_batch_size
                    )
                )
                .scalars()
                .all()
            )
            if not candidate_ids:
                self.session.rollback()
                return None

            for job_id in candidate_ids:
                result = self.session.execute(
                    update(IngestionJobDB)
                    .where(
                        IngestionJobDB.id == job_id,
                        IngestionJobDB.status == JobStatus.QUEUED.value,
                    )
                    .values(
                        status=JobStatus.RUNNING.value,
                        locked_at=now,
                        locked_by=worker_id,
                        attempts=IngestionJobDB.attempts + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    self.session.commit()
                    row = self.session.get(IngestionJobDB, job_id, populate_existing=True)
                    return ClaimedJob.from_row(row)

            # Every candidate was taken by someone else; they are no longer
            # queued, so the next scan sees a fresh set.
            self.session.commit()

    def mark_success(self, job_id: str) -> None:
        """Finish a job successfully and release its lock."""
        now = utc_now()
        self._update(
            job_id,
            status=JobStatus.SUCCESS.value,
            finished_at=now,
            locked_at=None,
            locked_by=None,
            last_error=None,
            updated_at=now,
        )

    def mark_failure(
        self,
        job_id: str,
        error: str,
        attempts: int,
        max_attempts: int,
        terminal: bool = False,
        now: datetime | None = None,
    ) -> JobStatus:
        """
        Record a failed attempt.

        Re-queues with backoff while attempts < max_attempts, otherwise (or
        when terminal is set) fails the job for good.

        Returns:
            The status the job ended up in
        """
        now = now or utc_now()
        error_text = str(error)[:MAX_ERROR_LENGTH]

        if terminal or attempts >= max_attempts:
            self._update(
                job_id,
                status=JobStatus.FAILED.value,
                last_error=error_text,
                finished_at=now,
                locked_at=None,
                locked_by=None,
                updated_at=now,
            )
            return JobStatus.FAILED

        self._update(
            job_id,
            status=JobStatus.QUEUED.value,
            run_after=now + timedelta(minutes=backoff_minutes(attempts)),
            last_error=error_text,
            locked_at=None,
            locked_by=None,
            updated_at=now,
        )
        return JobStatus.QUEUED

    def get(self, job_id: str) -> IngestionJobDB:
        """Load a job row, raising NotFoundError if missing."""
        row = self.session.get(IngestionJobDB, job_id, populate_existing=True)
        if row is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return row

    def _update(self, job_id: str, **values: Any) -> None:
        result = self.session.execute(
            update(IngestionJobDB)
            .where(IngestionJobDB.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise NotFoundError(f"Job not found: {job_id}")
        self.session.commit()
