"""Offer summary read model.

Per product: minimum in-stock price, in-stock offer count, the latest check
time, and a staleness flag. Summaries are derived from the offers table and
can be recomputed at any time; ensure_for_product_ids fills in missing rows
lazily (cache-aside).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, case, delete, func, select
from sqlalchemy.orm import Session

from catalog_ingest.core.clock import as_utc, utc_now
from catalog_ingest.db.models import OfferDB, OfferSummaryDB
from catalog_ingest.db.upsert import dialect_insert

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(hours=24)


def is_stale(checked_at: datetime | None, now: datetime, stale_after: timedelta) -> bool:
    """A summary is stale when never checked or checked before now - stale_after."""
    checked_at = as_utc(checked_at)
    return checked_at is None or checked_at < now - stale_after


@dataclass
class OfferSummary:
    """Offer rollup for one product."""

    product_id: str
    min_price_cents: int | None
    in_stock_count: int
    stale_flag: bool
    checked_at: datetime | None

    @classmethod
    def from_row(cls, row: OfferSummaryDB) -> OfferSummary:
        return cls(
            product_id=row.product_id,
            min_price_cents=row.min_price_cents,
            in_stock_count=row.in_stock_count,
            stale_flag=row.stale_flag,
            checked_at=as_utc(row.checked_at),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "productId": self.product_id,
            "minPriceCents": self.min_price_cents,
            "inStockCount": self.in_stock_count,
            "staleFlag": self.stale_flag,
            "checkedAt": self.checked_at.isoformat() if self.checked_at else None,
        }


class OfferSummaryService:
    """Recomputes and serves per-product offer summaries."""

    def __init__(self, session: Session, stale_after: timedelta = DEFAULT_STALE_AFTER) -> None:
        self.session = session
        self.stale_after = stale_after

    def refresh_for_product_ids(
        self, product_ids: Iterable[str], now: datetime | None = None
    ) -> int:
        """
        Recompute summaries for the given products.

        Products without any offer lose their summary row.

        Returns:
            Number of summaries written
        """
        ids = sorted(set(product_ids))
        if not ids:
            return 0
        now = now or utc_now()
        self.session.flush()

        in_stock_priced = and_(OfferDB.in_stock.is_(True), OfferDB.price_cents.is_not(None))
        rows = self.session.execute(
            select(
                OfferDB.product_id,
                func.min(case((in_stock_priced, OfferDB.price_cents))).label("min_price"),
                func.sum(case((OfferDB.in_stock.is_(True), 1), else_=0)).label("in_stock"),
                func.max(OfferDB.last_checked_at).label("checked_at"),
            )
            .where(OfferDB.product_id.in_(ids))
            .group_by(OfferDB.product_id)
        ).all()

        aggregates = {row.product_id: row for row in rows}
        empty = [pid for pid in ids if pid not in aggregates]
        if empty:
            self.session.execute(
                delete(OfferSummaryDB).where(OfferSummaryDB.product_id.in_(empty))
            )

        for product_id, row in aggregates.items():
            checked_at = as_utc(row.checked_at)
            values = {
                "min_price_cents": row.min_price,
                "in_stock_count": int(row.in_stock or 0),
                "stale_flag": is_stale(checked_at, now, self.stale_after),
                "checked_at": checked_at,
                "updated_at": now,
            }
            stmt = dialect_insert(self.session, OfferSummaryDB.__table__).values(
                product_id=product_id, **values
            )
            stmt = stmt.on_conflict_do_update(index_elements=["product_id"], set_=values)
            self.session.execute(stmt)

        logger.debug(f"Refreshed {len(aggregates)} offer summaries ({len(empty)} removed)")
        return len(aggregates)

    def list_by_product_ids(self, product_ids: Iterable[str]) -> dict[str, OfferSummary]:
        """Stored summaries keyed by product id. Missing products are absent."""
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = self.session.execute(
            select(OfferSummaryDB)
            .where(OfferSummaryDB.product_id.in_(ids))
            .execution_options(populate_existing=True)
        ).scalars()
        return {row.product_id: OfferSummary.from_row(row) for row in rows}

    def ensure_for_product_ids(
        self, product_ids: Iterable[str], now: datetime | None = None
    ) -> dict[str, OfferSummary]:
        """Return summaries, computing and persisting any that are missing."""
        ids = sorted(set(product_ids))
        summaries = self.list_by_product_ids(ids)
        missing = [pid for pid in ids if pid not in summaries]
        if missing:
            self.refresh_for_product_ids(missing, now)
            summaries.update(self.list_by_product_ids(missing))
        return summaries
