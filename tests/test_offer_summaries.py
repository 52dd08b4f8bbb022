"""Tests for the offer summary read model."""

from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from catalog_ingest.db.models import OfferSummaryDB
from catalog_ingest.services.offer_summaries import OfferSummaryService, is_stale
from tests.factories import Catalog, make_offer, make_product, make_retailer

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class TestIsStale:
    """Tests for is_stale."""

    def test_never_checked(self) -> None:
        assert is_stale(None, NOW, timedelta(hours=24)) is True

    def test_boundary(self) -> None:
        """Test the staleness cutoff."""
        window = timedelta(hours=24)
        assert is_stale(NOW - timedelta(hours=23), NOW, window) is False
        assert is_stale(NOW - timedelta(hours=25), NOW, window) is True

    def test_naive_datetimes_are_utc(self) -> None:
        """Test values read back from SQLite without tzinfo."""
        naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert is_stale(naive, NOW, timedelta(hours=24)) is False


class TestOfferSummaryService:
    """Tests for OfferSummaryService."""

    def test_refresh_aggregates(self, session: Session, catalog: Catalog) -> None:
        """Test min in-stock price, in-stock count and latest check."""
        product = make_product(session, catalog)
        shop_b = make_retailer(session, "shop-b")
        shop_c = make_retailer(session, "shop-c")
        make_offer(
            session, product, catalog.retailer, price_cents=1000, in_stock=True,
            last_checked_at=NOW - timedelta(hours=2),
        )
        make_offer(
            session, product, shop_b, price_cents=800, in_stock=True,
            last_checked_at=NOW - timedelta(hours=30),
        )
        make_offer(session, product, shop_c, price_cents=500, in_stock=False)

        written = OfferSummaryService(session).refresh_for_product_ids([product.id], NOW)
        session.commit()

        assert written == 1
        summary = OfferSummaryService(session).list_by_product_ids([product.id])[product.id]
        assert summary.min_price_cents == 800
        assert summary.in_stock_count == 2
        assert summary.checked_at == NOW - timedelta(hours=2)
        assert summary.stale_flag is False

    def test_stale_when_never_checked(self, session: Session, catalog: Catalog) -> None:
        """Test the stale flag for unchecked offers."""
        product = make_product(session, catalog)
        make_offer(session, product, catalog.retailer, price_cents=1000)

        OfferSummaryService(session).refresh_for_product_ids([product.id], NOW)

        summary = OfferSummaryService(session).list_by_product_ids([product.id])[product.id]
        assert summary.stale_flag is True
        assert summary.checked_at is None

    def test_no_in_stock_price(self, session: Session, catalog: Catalog) -> None:
        """Test a product whose offers are all out of stock."""
        product = make_product(session, catalog)
        make_offer(session, product, catalog.retailer, price_cents=1000, in_stock=False)

        OfferSummaryService(session).refresh_for_product_ids([product.id], NOW)

        summary = OfferSummaryService(session).list_by_product_ids([product.id])[product.id]
        assert summary.min_price_cents is None
        assert summary.in_stock_count == 0

    def test_product_without_offers_loses_summary(
        self, session: Session, catalog: Catalog
    ) -> None:
        """Test that summaries of products without offers are removed."""
        product = make_product(session, catalog)
        session.add(OfferSummaryDB(product_id=product.id, in_stock_count=3, stale_flag=False))
        session.commit()

        written = OfferSummaryService(session).refresh_for_product_ids([product.id], NOW)
        session.commit()

        assert written == 0
        assert OfferSummaryService(session).list_by_product_ids([product.id]) == {}

    def test_refresh_nothing(self, session: Session) -> None:
        """Test an empty id list."""
        assert OfferSummaryService(session).refresh_for_product_ids([]) == 0

    def test_ensure_fills_missing(self, session: Session, catalog: Catalog) -> None:
        """Test lazy computation of missing summaries."""
        product = make_product(session, catalog)
        make_offer(session, product, catalog.retailer, price_cents=4200)
        service = OfferSummaryService(session)
        assert service.list_by_product_ids([product.id]) == {}

        summaries = service.ensure_for_product_ids([product.id], NOW)

        assert summaries[product.id].min_price_cents == 4200
        assert summaries[product.id].to_dict()["minPriceCents"] == 4200
