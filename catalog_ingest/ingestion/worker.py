"""
Worker Module
=============

Claims jobs one at a time and dispatches them to the handler registered
for their kind. Each job runs inside an ingestion run row so its stats
and errors are recorded against the source it feeds.

Failures never escape run(): the job is marked failed (terminal errors)
or re-queued with backoff (everything else).
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from catalog_ingest.core.enums import JobKind, JobStatus, RunStatus
from catalog_ingest.core.errors import NotFoundError, TerminalJobError, ValidationError
from catalog_ingest.core.schema import parse_job_payload
from catalog_ingest.ingestion.detail_parser import OfferDetailParser, parse_offer_detail
from catalog_ingest.ingestion.handlers import HANDLERS, HttpFetcher, JobContext, JobHandler
from catalog_ingest.ingestion.job_queue import ClaimedJob, JobQueue
from catalog_ingest.ingestion.recovery import STUCK_RUNNING_MINUTES, JobRecovery
from catalog_ingest.ingestion.snapshots import SnapshotIngestor
from catalog_ingest.ingestion.sources import ensure_source, finish_run, start_run
from catalog_ingest.services.offer_summaries import DEFAULT_STALE_AFTER, OfferSummaryService

logger = logging.getLogger(__name__)

MAX_JOBS_LIMIT = 500
TERMINAL_ERRORS = (TerminalJobError, ValidationError, NotFoundError)


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


@dataclass
class WorkerResult:
    """Outcome of one worker pass."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    requeued: int = 0
    dry_run: bool = False
    next_job: ClaimedJob | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "requeued": self.requeued,
        }
        if self.dry_run:
            data["dryRun"] = True
            data["nextJob"] = self.next_job.to_dict() if self.next_job else None
        return data


class Worker:
    """
    Job dispatcher.

    Example:
        with Fetcher() as fetcher:
            result = Worker(session, fetcher).run(max_jobs=10)
    """

    def __init__(
        self,
        session: Session,
        fetcher: HttpFetcher,
        worker_id: str | None = None,
        queue: JobQueue | None = None,
        detail_parser: OfferDetailParser = parse_offer_detail,
        handlers: dict[JobKind, JobHandler] | None = None,
        reap_after_minutes: int | None = STUCK_RUNNING_MINUTES,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> None:
        self.session = session
        self.fetcher = fetcher
        self.worker_id = worker_id or default_worker_id()
        self.queue = queue or JobQueue(session)
        self.detail_parser = detail_parser
        self.handlers = HANDLERS if handlers is None else handlers
        self.reap_after_minutes = reap_after_minutes
        self.stale_after = stale_after

    def run(self, max_jobs: int = 25, dry_run: bool = False) -> WorkerResult:
        """
        Process up to max_jobs jobs, stopping early when the queue is empty.

        Args:
            max_jobs: Upper bound on jobs claimed (1..500)
            dry_run: Only report which job would be claimed next

        Raises:
            ValidationError: If max_jobs is out of range
        """
        if not 1 <= max_jobs <= MAX_JOBS_LIMIT:
            raise ValidationError(f"max_jobs must be between 1 and {MAX_JOBS_LIMIT}")

        if dry_run:
            return WorkerResult(dry_run=True, next_job=self.queue.peek_next())

        if self.reap_after_minutes:
            JobRecovery(self.session).reclaim_stuck_running(self.reap_after_minutes)

        result = WorkerResult()
        for _ in range(max_jobs):
            job = self.queue.claim_next(self.worker_id)
            if job is None:
                break
            result.processed += 1
            status = self.process(job)
            if status == JobStatus.SUCCESS:
                result.succeeded += 1
            elif status == JobStatus.QUEUED:
                result.requeued += 1
            else:
                result.failed += 1

        logger.info(
            f"Worker {self.worker_id}: processed={result.processed} "
            f"succeeded={result.succeeded} requeued={result.requeued} failed={result.failed}"
        )
        return result

    def process(self, job: ClaimedJob) -> JobStatus:
        """Run one claimed job and settle its queue state."""
        try:
            self._execute(job)
        except Exception as e:
            self.session.rollback()
            return self._record_failure(job, e)
        return JobStatus.SUCCESS

    def _execute(self, job: ClaimedJob) -> dict[str, Any]:
        try:
            kind = JobKind(job.kind)
        except ValueError as e:
            raise TerminalJobError(f"Unknown job kind: {job.kind}") from e
        handler = self.handlers.get(kind)
        if handler is None:
            raise TerminalJobError(f"No handler for job kind: {job.kind}")
        payload = parse_job_payload(kind, job.payload)

        source = ensure_source(self.session, handler.source)
        run = start_run(self.session, source.id)
        run_id = run.id
        self.session.commit()

        context = JobContext(
            session=self.session,
            job=job,
            source=source,
            run_id=run_id,
            fetcher=self.fetcher,
            snapshots=SnapshotIngestor(self.session),
            summaries=OfferSummaryService(self.session, self.stale_after),
            detail_parser=self.detail_parser,
        )
        try:
            stats = handler.run(context, payload)
        except Exception as e:
            self.session.rollback()
            self._fail_run(run_id, job, e)
            raise

        finish_run(self.session, run_id, RunStatus.SUCCESS, stats={**stats, "jobId": job.id})
        self.session.commit()
        self.queue.mark_success(job.id)
        logger.info(f"Job {job.id} ({job.kind}) succeeded: {stats}")
        return stats

    def _fail_run(self, run_id: str, job: ClaimedJob, error: Exception) -> None:
        try:
            finish_run(
                self.session,
                run_id,
                RunStatus.FAILED,
                stats={"jobId": job.id, "attempt": job.attempts},
                error=str(error)[:4000],
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception(f"Could not record failed run {run_id} for job {job.id}")

    def _record_failure(self, job: ClaimedJob, error: Exception) -> JobStatus:
        terminal = isinstance(error, TERMINAL_ERRORS)
        logger.error(
            f"Job {job.id} ({job.kind}) failed on attempt {job.attempts}/{job.max_attempts}: {error}",
            extra={
                "jobId": job.id,
                "kind": job.kind,
                "attempts": job.attempts,
                "maxAttempts": job.max_attempts,
                "terminal": terminal,
            },
        )
        try:
            return self.queue.mark_failure(
                job.id, str(error), job.attempts, job.max_attempts, terminal=terminal
            )
        except Exception:
            self.session.rollback()
            logger.exception(f"Could not record failure of job {job.id}")
            return JobStatus.RUNNING
