"""Shared types for job handlers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from catalog_ingest.db.models import OfferDB
from catalog_ingest.db.models_ingestion import IngestionSourceDB
from catalog_ingest.ingestion.detail_parser import OfferDetailParser
from catalog_ingest.ingestion.fetcher import FetchResult, HeadResult
from catalog_ingest.ingestion.job_queue import ClaimedJob
from catalog_ingest.ingestion.registry import SourceDefinition
from catalog_ingest.ingestion.snapshots import SnapshotIngestor
from catalog_ingest.services.offer_summaries import OfferSummaryService


class HttpFetcher(Protocol):
    """What handlers need from a fetcher."""

    def head(self, url: str, timeout_ms: int) -> HeadResult: ...

    def get(self, url: str, timeout_ms: int) -> FetchResult: ...


@dataclass
class JobContext:
    """Everything a handler may touch while running one job."""

    session: Session
    job: ClaimedJob
    source: IngestionSourceDB
    run_id: str
    fetcher: HttpFetcher
    snapshots: SnapshotIngestor
    summaries: OfferSummaryService
    detail_parser: OfferDetailParser


@dataclass(frozen=True)
class JobHandler:
    """A job kind's source and the function that runs it."""

    source: SourceDefinition
    run: Callable[[JobContext, Any], dict[str, Any]]


def refresh_window(
    older_than_hours: int | None, older_than_days: int | None, default_hours: int
) -> timedelta:
    """Hours win over days; neither means the default window."""
    if older_than_hours is not None:
        return timedelta(hours=older_than_hours)
    if older_than_days is not None:
        return timedelta(days=older_than_days)
    return timedelta(hours=default_hours)


def select_offers_due(session: Session, cutoff: datetime, limit: int) -> list[OfferDB]:
    """Offers with a URL never checked or last checked before cutoff, oldest first."""
    return list(
        session.execute(
            select(OfferDB)
            .where(
                or_(OfferDB.url.is_not(None), OfferDB.affiliate_url.is_not(None)),
                or_(OfferDB.last_checked_at.is_(None), OfferDB.last_checked_at < cutoff),
            )
            .order_by(OfferDB.last_checked_at.asc().nulls_first(), OfferDB.id)
            .limit(limit)
        ).scalars()
    )


def offer_url(offer: OfferDB) -> str | None:
    """URL to check for an offer: the retailer URL, else the affiliate URL."""
    return offer.url or offer.affiliate_url
