"""Offer availability refresh via HEAD requests."""

from __future__ import annotations

import logging
from typing import Any

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.enums import CanonicalType, EntityType, MatchMethod
from catalog_ingest.core.errors import NotFoundError, TransientFetchError, ValidationError
from catalog_ingest.core.schema import HeadRefreshBulkPayload, HeadRefreshOnePayload
from catalog_ingest.db.models import OfferDB
from catalog_ingest.ingestion.handlers.base import (
    JobContext,
    offer_url,
    refresh_window,
    select_offers_due,
)
from catalog_ingest.normalization.canonical import upsert_mapping
from catalog_ingest.normalization.offers import apply_offer_observation

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 48


def check_offer(ctx: JobContext, offer: OfferDB, timeout_ms: int) -> dict[str, bool]:
    """
    HEAD one offer URL, snapshot the answer and apply it as stock.

    Statuses that carry no stock signal still stamp last_checked_at.

    Raises:
        TransientFetchError: On timeout or network failure
    """
    url = offer_url(offer)
    head = ctx.fetcher.head(url, timeout_ms)

    raw = {
        "url": url,
        "finalUrl": head.final_url,
        "status": head.status_code,
        "contentType": head.content_type,
        "availability": head.availability,
        "observedMinute": head.checked_at.replace(second=0, microsecond=0).isoformat(),
    }
    ingested = ctx.snapshots.ingest(
        ctx.source.id,
        ctx.run_id,
        EntityType.OFFER,
        offer.id,
        raw,
        url=url,
        fetched_at=head.checked_at,
    )
    upsert_mapping(
        ctx.session,
        entity_id=ingested.entity_id,
        canonical_type=CanonicalType.OFFER,
        canonical_id=offer.id,
        match_method=MatchMethod.OFFER_ID.value,
        confidence=100,
    )
    observation = apply_offer_observation(
        ctx.session,
        offer.id,
        in_stock=head.availability,
        checked_at=head.checked_at,
        summaries=ctx.summaries,
    )
    return {"snapshot_created": ingested.snapshot_created, "changed": observation.changed}


def run_bulk(ctx: JobContext, payload: HeadRefreshBulkPayload) -> dict[str, Any]:
    """Check offers not checked within the window. Per-offer fetch failures are counted."""
    window = refresh_window(payload.older_than_hours, payload.older_than_days, DEFAULT_WINDOW_HOURS)
    offers = select_offers_due(ctx.session, utc_now() - window, payload.limit)

    stats = {"scanned": len(offers), "checked": 0, "failed": 0, "snapshotsCreated": 0, "changed": 0}
    for offer in offers:
        try:
            outcome = check_offer(ctx, offer, payload.timeout_ms)
        except TransientFetchError as e:
            stats["failed"] += 1
            logger.warning(f"HEAD check failed for offer {offer.id}: {e}")
            continue
        stats["checked"] += 1
        stats["snapshotsCreated"] += int(outcome["snapshot_created"])
        stats["changed"] += int(outcome["changed"])
    return stats


def run_one(ctx: JobContext, payload: HeadRefreshOnePayload) -> dict[str, Any]:
    """Check a single offer. Fetch failures propagate so the job is retried."""
    offer = ctx.session.get(OfferDB, payload.offer_id)
    if offer is None:
        raise NotFoundError(f"Offer not found: {payload.offer_id}")
    if not offer_url(offer):
        raise ValidationError(f"Offer {offer.id} has no URL to check")

    outcome = check_offer(ctx, offer, payload.timeout_ms)
    return {
        "offerId": offer.id,
        "checked": 1,
        "snapshotsCreated": int(outcome["snapshot_created"]),
        "changed": int(outcome["changed"]),
    }
