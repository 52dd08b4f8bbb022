"""
Offer Detail Parser
===================

Extracts {price, currency, inStock} from a retailer product page.
JSON-LD Offer nodes are preferred; Open Graph / product meta tags are the
fallback. Anything not found is left as None.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from selectolax.parser import HTMLParser

logger = logging.getLogger(__name__)

IN_STOCK_MARKERS = ("instock", "in stock", "limitedavailability", "onlineonly", "presale")
OUT_OF_STOCK_MARKERS = ("outofstock", "out of stock", "soldout", "sold out", "discontinued")


@dataclass
class ParsedOfferDetail:
    """Price and stock as read from a page."""

    price_cents: int | None = None
    currency: str | None = None
    in_stock: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"priceCents": self.price_cents, "currency": self.currency, "inStock": self.in_stock}


OfferDetailParser = Callable[[str], ParsedOfferDetail]


def price_to_cents(value: Any) -> int | None:
    """Convert '19.99', '1,299.00' or 19.99 to integer cents."""
    if value is None or isinstance(value, bool):
        return None
    text = re.sub(r"[^0-9.]", "", str(value))
    if not text:
        return None
    try:
        cents = (Decimal(text) * 100).quantize(Decimal("1"))
    except InvalidOperation:
        return None
    return int(cents) if cents >= 0 else None


def parse_availability(value: Any) -> bool | None:
    """Map a schema.org availability URL or free text onto in-stock."""
    if value is None:
        return None
    text = str(value).strip().lower()
    if any(marker in text for marker in OUT_OF_STOCK_MARKERS):
        return False
    if any(marker in text for marker in IN_STOCK_MARKERS):
        return True
    return None


def _walk(node: Any) -> Iterator[dict[str, Any]]:
    if isinstance(node, list):
        for item in node:
            yield from _walk(item)
    elif isinstance(node, dict):
        yield node
        for key in ("@graph", "offers", "mainEntity"):
            if key in node:
                yield from _walk(node[key])


def _is_offer(node: dict[str, Any]) -> bool:
    node_type = node.get("@type")
    types = node_type if isinstance(node_type, list) else [node_type]
    return any(t in ("Offer", "AggregateOffer") for t in types)


def extract_json_ld(tree: HTMLParser) -> list[Any]:
    """Decoded JSON-LD blocks of a page. Blocks that are not valid JSON are skipped."""
    blocks = []
    for script in tree.css('script[type="application/ld+json"]'):
        try:
            blocks.append(json.loads(script.text()))
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block")
            continue
    return blocks


def extract_meta(tree: HTMLParser) -> dict[str, str]:
    """Meta tag contents keyed by lower-cased property or name. The first tag wins."""
    tags: dict[str, str] = {}
    for node in tree.css("meta"):
        attributes = node.attributes
        key = attributes.get("property") or attributes.get("name")
        content = attributes.get("content")
        if key and content is not None:
            tags.setdefault(key.lower(), content)
    return tags


def _from_json_ld(tree: HTMLParser) -> ParsedOfferDetail:
    result = ParsedOfferDetail()
    for data in extract_json_ld(tree):
        for node in _walk(data):
            if not _is_offer(node):
                continue
            price = node.get("price", node.get("lowPrice"))
            if result.price_cents is None:
                result.price_cents = price_to_cents(price)
            if result.currency is None and node.get("priceCurrency"):
                result.currency = str(node["priceCurrency"]).upper()
            if result.in_stock is None:
                result.in_stock = parse_availability(node.get("availability"))
    return result


def _from_meta(tree: HTMLParser) -> ParsedOfferDetail:
    tags = extract_meta(tree)
    price = tags.get("product:price:amount") or tags.get("og:price:amount")
    currency = tags.get("product:price:currency") or tags.get("og:price:currency")
    return ParsedOfferDetail(
        price_cents=price_to_cents(price),
        currency=currency.upper() if currency else None,
        in_stock=parse_availability(tags.get("product:availability") or tags.get("og:availability")),
    )


def parse_offer_detail(html: str) -> ParsedOfferDetail:
    """Default parser: JSON-LD first, meta tags for whatever is missing."""
    tree = HTMLParser(html)
    result = _from_json_ld(tree)
    if result.price_cents is None or result.currency is None or result.in_stock is None:
        fallback = _from_meta(tree)
        if result.price_cents is None:
            result.price_cents = fallback.price_cents
        if result.currency is None:
            result.currency = fallback.currency
        if result.in_stock is None:
            result.in_stock = fallback.in_stock
    return result
