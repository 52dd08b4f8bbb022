"""Tests for the offer detail parser."""

import json

import pytest

from catalog_ingest.ingestion.detail_parser import (
    parse_availability,
    parse_offer_detail,
    price_to_cents,
)


def json_ld(data: dict) -> str:
    return f'<script type="application/ld+json">{json.dumps(data)}</script>'


class TestPriceToCents:
    """Tests for price_to_cents."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("19.99", 1999),
            ("1,299.00", 129900),
            (19.99, 1999),
            (42, 4200),
            ("$7", 700),
            ("", None),
            ("n/a", None),
            (None, None),
            (True, None),
        ],
    )
    def test_conversion(self, value: object, expected: int | None) -> None:
        assert price_to_cents(value) == expected


class TestParseAvailability:
    """Tests for parse_availability."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("https://schema.org/InStock", True),
            ("http://schema.org/OutOfStock", False),
            ("Sold out", False),
            ("LimitedAvailability", True),
            ("call us", None),
            (None, None),
        ],
    )
    def test_markers(self, value: str | None, expected: bool | None) -> None:
        assert parse_availability(value) == expected


class TestParseOfferDetail:
    """Tests for parse_offer_detail."""

    def test_json_ld_product_with_offer(self) -> None:
        """Test a Product node with a nested Offer."""
        html = json_ld(
            {
                "@context": "https://schema.org",
                "@type": "Product",
                "name": "Tank A",
                "offers": {
                    "@type": "Offer",
                    "price": "129.99",
                    "priceCurrency": "usd",
                    "availability": "https://schema.org/InStock",
                },
            }
        )

        parsed = parse_offer_detail(html)

        assert parsed.price_cents == 12999
        assert parsed.currency == "USD"
        assert parsed.in_stock is True

    def test_json_ld_graph_and_aggregate_offer(self) -> None:
        """Test @graph traversal and AggregateOffer lowPrice."""
        html = json_ld(
            {
                "@graph": [
                    {"@type": "WebPage"},
                    {
                        "@type": "Product",
                        "offers": [
                            {"@type": "AggregateOffer", "lowPrice": 49, "priceCurrency": "EUR"}
                        ],
                    },
                ]
            }
        )

        parsed = parse_offer_detail(html)

        assert parsed.price_cents == 4900
        assert parsed.currency == "EUR"
        assert parsed.in_stock is None

    def test_meta_tags_fill_gaps(self) -> None:
        """Test the Open Graph fallback for missing fields."""
        html = (
            json_ld({"@type": "Offer", "price": "10.00"})
            + '<meta property="product:price:currency" content="cad">'
            + '<meta property="product:availability" content="out of stock">'
        )

        parsed = parse_offer_detail(html)

        assert parsed.price_cents == 1000
        assert parsed.currency == "CAD"
        assert parsed.in_stock is False

    def test_meta_only(self) -> None:
        """Test a page with only meta tags."""
        html = (
            '<meta property="og:price:amount" content="5.50">'
            '<meta property="og:price:currency" content="GBP">'
        )
        parsed = parse_offer_detail(html)
        assert (parsed.price_cents, parsed.currency) == (550, "GBP")

    def test_meta_attribute_order_does_not_matter(self) -> None:
        """Test meta tags with content before property."""
        html = (
            '<meta content="19.99" property="product:price:amount">'
            '<meta content="usd" name="product:price:currency">'
        )
        parsed = parse_offer_detail(html)
        assert (parsed.price_cents, parsed.currency) == (1999, "USD")

    def test_unquoted_script_type(self) -> None:
        """Test a JSON-LD script with extra and unquoted attributes."""
        html = (
            '<html><head><script id="x" type=application/ld+json>'
            '{"@type": "Offer", "price": "5.00", "priceCurrency": "EUR",'
            ' "availability": "https://schema.org/InStock"}'
            "</script></head><body></body></html>"
        )
        parsed = parse_offer_detail(html)
        assert parsed.to_dict() == {"priceCents": 500, "currency": "EUR", "inStock": True}

    def test_broken_json_ld_is_ignored(self) -> None:
        """Test that malformed JSON-LD does not raise."""
        html = '<script type="application/ld+json">{not json</script>'
        parsed = parse_offer_detail(html)
        assert parsed.to_dict() == {"priceCents": None, "currency": None, "inStock": None}
