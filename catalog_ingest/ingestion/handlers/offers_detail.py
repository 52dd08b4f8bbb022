"""Offer price and stock refresh via page fetch and parse."""

from __future__ import annotations

import logging
from typing import Any

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.enums import CanonicalType, EntityType, MatchMethod
from catalog_ingest.core.errors import NotFoundError, TransientFetchError, ValidationError
from catalog_ingest.core.schema import DetailRefreshBulkPayload, DetailRefreshOnePayload
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

DEFAULT_WINDOW_HOURS = 20


def refresh_offer(ctx: JobContext, offer: OfferDB, timeout_ms: int) -> dict[str, bool]:
    """
    Fetch and parse one offer page, snapshot it, apply price and stock.

    Pages where nothing could be parsed are snapshotted but not applied.

    Raises:
        TransientFetchError: On timeout, network failure or non-2xx status
    """
    url = offer_url(offer)
    page = ctx.fetcher.get(url, timeout_ms)
    parsed = ctx.detail_parser(page.text)

    raw = {
        "url": url,
        "finalUrl": page.final_url,
        "status": page.status_code,
        "contentType": page.content_type,
        **parsed.to_dict(),
    }
    ingested = ctx.snapshots.ingest(
        ctx.source.id,
        ctx.run_id,
        EntityType.OFFER,
        offer.id,
        raw,
        url=url,
        fetched_at=page.fetched_at,
    )
    upsert_mapping(
        ctx.session,
        entity_id=ingested.entity_id,
        canonical_type=CanonicalType.OFFER,
        canonical_id=offer.id,
        match_method=MatchMethod.OFFER_ID.value,
        confidence=100,
    )

    parsed_anything = (
        parsed.price_cents is not None or parsed.currency is not None or parsed.in_stock is not None
    )
    changed = False
    if parsed_anything:
        observation = apply_offer_observation(
            ctx.session,
            offer.id,
            price_cents=parsed.price_cents,
            currency=parsed.currency,
            in_stock=parsed.in_stock,
            checked_at=page.fetched_at,
            summaries=ctx.summaries,
        )
        changed = observation.changed
    else:
        logger.info(f"Nothing parsed from {url} for offer {offer.id}")

    return {
        "snapshot_created": ingested.snapshot_created,
        "parsed": parsed_anything,
        "changed": changed,
    }


def _tally(stats: dict[str, int], outcome: dict[str, bool]) -> None:
    stats["checked"] += 1
    stats["snapshotsCreated"] += int(outcome["snapshot_created"])
    stats["changed"] += int(outcome["changed"])
    stats["unparsed"] += int(not outcome["parsed"])


def run_bulk(ctx: JobContext, payload: DetailRefreshBulkPayload) -> dict[str, Any]:
    """Refresh offers not checked within the window. Per-offer fetch failures are counted."""
    window = refresh_window(payload.older_than_hours, payload.older_than_days, DEFAULT_WINDOW_HOURS)
    offers = select_offers_due(ctx.session, utc_now() - window, payload.limit)

    stats = {
        "scanned": len(offers),
        "checked": 0,
        "failed": 0,
        "snapshotsCreated": 0,
        "changed": 0,
        "unparsed": 0,
    }
    for offer in offers:
        try:
            outcome = refresh_offer(ctx, offer, payload.timeout_ms)
        except TransientFetchError as e:
            stats["failed"] += 1
            logger.warning(f"Detail refresh failed for offer {offer.id}: {e}")
            continue
        _tally(stats, outcome)
    return stats


def run_one(ctx: JobContext, payload: DetailRefreshOnePayload) -> dict[str, Any]:
    """Refresh a single offer. Fetch failures propagate so the job is retried."""
    offer = ctx.session.get(OfferDB, payload.offer_id)
    if offer is None:
        raise NotFoundError(f"Offer not found: {payload.offer_id}")
    if not offer_url(offer):
        raise ValidationError(f"Offer {offer.id} has no URL to refresh")

    stats = {"offerId": offer.id, "checked": 0, "snapshotsCreated": 0, "changed": 0, "unparsed": 0}
    _tally(stats, refresh_offer(ctx, offer, payload.timeout_ms))
    return stats
