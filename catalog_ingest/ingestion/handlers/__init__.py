"""
Job handler registry.

Every JobKind must have a handler; a kind without one fails at import
rather than at run time.
"""

from catalog_ingest.core.enums import JobKind
from catalog_ingest.ingestion.handlers import offers_detail, offers_head
from catalog_ingest.ingestion.handlers.base import HttpFetcher, JobContext, JobHandler
from catalog_ingest.ingestion.sources import OFFERS_DETAIL_SOURCE, OFFERS_HEAD_SOURCE

HANDLERS: dict[JobKind, JobHandler] = {
    JobKind.OFFERS_HEAD_REFRESH_BULK: JobHandler(OFFERS_HEAD_SOURCE, offers_head.run_bulk),
    JobKind.OFFERS_HEAD_REFRESH_ONE: JobHandler(OFFERS_HEAD_SOURCE, offers_head.run_one),
    JobKind.OFFERS_DETAIL_REFRESH_BULK: JobHandler(OFFERS_DETAIL_SOURCE, offers_detail.run_bulk),
    JobKind.OFFERS_DETAIL_REFRESH_ONE: JobHandler(OFFERS_DETAIL_SOURCE, offers_detail.run_one),
}

_missing = set(JobKind) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for job kinds: {sorted(k.value for k in _missing)}")

__all__ = ["HANDLERS", "HttpFetcher", "JobContext", "JobHandler"]
