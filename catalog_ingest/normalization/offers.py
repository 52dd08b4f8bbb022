"""Apply fetched price/stock observations to canonical offers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from catalog_ingest.core.clock import utc_now
from catalog_ingest.core.errors import NotFoundError
from catalog_ingest.db.models import OfferDB, PriceHistoryDB
from catalog_ingest.services.offer_summaries import OfferSummaryService

logger = logging.getLogger(__name__)


@dataclass
class ObservationResult:
    """What an observation changed on an offer."""

    offer_id: str
    product_id: str
    price_changed: bool = False
    currency_changed: bool = False
    stock_changed: bool = False

    @property
    def changed(self) -> bool:
        return self.price_changed or self.currency_changed or self.stock_changed


def apply_offer_observation(
    session: Session,
    offer_id: str,
    *,
    price_cents: int | None = None,
    currency: str | None = None,
    in_stock: bool | None = None,
    checked_at: datetime | None = None,
    summaries: OfferSummaryService | None = None,
) -> ObservationResult:
    """
    Apply one observation to an offer.

    Only values that were observed (not None) and differ are written.
    last_checked_at is always stamped. A price or stock change appends a
    price_history row. The product's offer summary is refreshed.

    Raises:
        NotFoundError: If the offer does not exist
    """
    offer = session.get(OfferDB, offer_id)
    if offer is None:
        raise NotFoundError(f"Offer not found: {offer_id}")

    now = checked_at or utc_now()
    result = ObservationResult(offer_id=offer.id, product_id=offer.product_id)

    if price_cents is not None and price_cents != offer.price_cents:
        offer.price_cents = price_cents
        result.price_changed = True
    if currency and currency.upper() != offer.currency:
        offer.currency = currency.upper()
        result.currency_changed = True
    if in_stock is not None and in_stock != offer.in_stock:
        offer.in_stock = in_stock
        result.stock_changed = True
    offer.last_checked_at = now

    if result.price_changed or result.stock_changed:
        session.add(
            PriceHistoryDB(
                offer_id=offer.id,
                price_cents=offer.price_cents,
                in_stock=offer.in_stock,
                recorded_at=now,
            )
        )
        logger.info(
            f"Offer {offer.id} changed: price={offer.price_cents} in_stock={offer.in_stock}"
        )
    session.flush()

    (summaries or OfferSummaryService(session)).refresh_for_product_ids([offer.product_id], now)
    return result
