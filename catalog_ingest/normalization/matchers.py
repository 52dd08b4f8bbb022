"""
Canonical Identity Matchers
===========================

Each matcher answers one question: given the identifiers of an incoming
record and the entity's existing mapping, which canonical row (if any) is
it? The answer is a MatchResult {canonical_id | None, match_method,
confidence}.

Rules shared by all matchers:
- An existing mapping always wins; a linked entity never re-links.
- Identifiers are compared after normalization (lower case, only a-z0-9).
- Identifiers are tried in a fixed order. An identifier shared by several
  canonical rows is skipped; other ties go to the lowest id. The same
  inputs always produce the same answer.

Matchers hold an index of the current canonical rows. The normalizer
registers rows it inserts or updates with add() so later records in the
same pass can match them.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Protocol

from catalog_ingest.core.enums import MatchMethod

# Order in which product identifiers are tried.
PRODUCT_IDENTIFIER_KEYS = ("sku", "upc", "ean", "gtin", "mpn", "asin", "model_number")

NEW_CANONICAL_CONFIDENCE = 80


def normalize_identifier(value: object) -> str | None:
    """Lower-case and strip everything but a-z0-9. Empty results are None."""
    if value is None:
        return None
    normalized = re.sub(r"[^a-z0-9]", "", str(value).lower())
    return normalized or None


def normalize_name(value: str | None) -> str | None:
    """Lower-case and collapse whitespace for name comparisons."""
    if not value:
        return None
    normalized = " ".join(value.lower().split())
    return normalized or None


@dataclass(frozen=True)
class ExistingMapping:
    """Mapping already stored for an ingestion entity."""

    canonical_id: str
    match_method: str
    confidence: int


@dataclass(frozen=True)
class MatchResult:
    """Outcome of identity resolution."""

    canonical_id: str | None
    match_method: str
    confidence: int

    @property
    def is_new(self) -> bool:
        return self.canonical_id is None


def _reuse(mapping: ExistingMapping) -> MatchResult:
    return MatchResult(mapping.canonical_id, mapping.match_method, mapping.confidence)


def _new() -> MatchResult:
    return MatchResult(None, MatchMethod.NEW_CANONICAL.value, NEW_CANONICAL_CONFIDENCE)


class CanonicalMatcher(Protocol):
    """Matcher contract used by the normalizer."""

    def match(self, incoming, existing_mapping: ExistingMapping | None = None) -> MatchResult: ...

    def add(self, candidate) -> None: ...


# ============================================================================
# Products
# ============================================================================


@dataclass
class ProductKeys:
    """Identifiers of a product, incoming or canonical."""

    id: str | None
    slug: str
    brand_id: str | None
    name: str
    model: str | None = None
    model_number: str | None = None
    source_entity_id: str | None = None
    identifiers: dict[str, str] = field(default_factory=dict)

    def ordered_identifiers(self) -> list[str]:
        """Normalized identifiers in matching order, duplicates removed."""
        raw: list[object] = [self.slug, self.source_entity_id]
        raw.extend(self.identifiers.get(key) for key in PRODUCT_IDENTIFIER_KEYS)
        if "model_number" not in self.identifiers:
            raw.append(self.model_number)
        raw.extend(
            self.identifiers[key]
            for key in sorted(self.identifiers)
            if key not in PRODUCT_IDENTIFIER_KEYS
        )
        seen: list[str] = []
        for value in raw:
            normalized = normalize_identifier(value)
            if normalized and normalized not in seen:
                seen.append(normalized)
        return seen

    def fingerprint(self) -> str | None:
        """brand::model key, falling back to the name."""
        if not self.brand_id:
            return None
        token = normalize_identifier(self.model_number or self.model or self.name)
        return f"{self.brand_id}::{token}" if token else None


class ProductMatcher:
    """
    Product identity resolution.

    Order: existing mapping, then any overlapping identifier
    (identifier_exact, 100), then brand + model fingerprint
    (brand_model_fingerprint, 92), else a new canonical row (80).
    """

    def __init__(self, candidates: list[ProductKeys] | None = None) -> None:
        self._by_identifier: dict[str, set[str]] = defaultdict(set)
        self._by_fingerprint: dict[str, set[str]] = defaultdict(set)
        for candidate in candidates or []:
            self.add(candidate)

    def add(self, candidate: ProductKeys) -> None:
        """Index a canonical product."""
        if candidate.id is None:
            raise ValueError("Canonical candidates need an id")
        for identifier in candidate.ordered_identifiers():
            self._by_identifier[identifier].add(candidate.id)
        fingerprint = candidate.fingerprint()
        if fingerprint:
            self._by_fingerprint[fingerprint].add(candidate.id)

    def match(
        self, incoming: ProductKeys, existing_mapping: ExistingMapping | None = None
    ) -> MatchResult:
        if existing_mapping is not None:
            return _reuse(existing_mapping)

        for identifier in incoming.ordered_identifiers():
            ids = self._by_identifier.get(identifier)
            # An identifier shared by several canonical rows proves nothing.
            if ids and len(ids) == 1:
                return MatchResult(next(iter(ids)), MatchMethod.IDENTIFIER_EXACT.value, 100)

        fingerprint = incoming.fingerprint()
        if fingerprint:
            ids = self._by_fingerprint.get(fingerprint)
            if ids and len(ids) == 1:
                return MatchResult(
                    next(iter(ids)), MatchMethod.BRAND_MODEL_FINGERPRINT.value, 92
                )

        return _new()


# ============================================================================
# Plants
# ============================================================================


@dataclass
class PlantKeys:
    """Identifiers of a plant."""

    id: str | None
    slug: str
    scientific_name: str | None = None


class PlantMatcher:
    """
    Plant identity resolution.

    Order: existing mapping, scientific name (scientific_name_exact, 97),
    slug (slug_exact, 94), else a new canonical row (80).
    """

    def __init__(self, candidates: list[PlantKeys] | None = None) -> None:
        self._by_scientific_name: dict[str, set[str]] = defaultdict(set)
        self._by_slug: dict[str, set[str]] = defaultdict(set)
        for candidate in candidates or []:
            self.add(candidate)

    def add(self, candidate: PlantKeys) -> None:
        """Index a canonical plant."""
        if candidate.id is None:
            raise ValueError("Canonical candidates need an id")
        name = normalize_name(candidate.scientific_name)
        if name:
            self._by_scientific_name[name].add(candidate.id)
        slug = normalize_identifier(candidate.slug)
        if slug:
            self._by_slug[slug].add(candidate.id)

    def match(
        self, incoming: PlantKeys, existing_mapping: ExistingMapping | None = None
    ) -> MatchResult:
        if existing_mapping is not None:
            return _reuse(existing_mapping)

        name = normalize_name(incoming.scientific_name)
        if name and self._by_scientific_name.get(name):
            return MatchResult(
                sorted(self._by_scientific_name[name])[0],
                MatchMethod.SCIENTIFIC_NAME_EXACT.value,
                97,
            )

        slug = normalize_identifier(incoming.slug)
        if slug and self._by_slug.get(slug):
            return MatchResult(sorted(self._by_slug[slug])[0], MatchMethod.SLUG_EXACT.value, 94)

        return _new()


# ============================================================================
# Offers
# ============================================================================


@dataclass
class OfferKeys:
    """An offer is identified by its product and retailer."""

    id: str | None
    product_id: str
    retailer_id: str


class OfferMatcher:
    """
    Offer identity resolution: one canonical offer per (product, retailer).

    Order: existing mapping, the (product, retailer) pair
    (product_retailer_pair, 96), else a new canonical row (80).
    """

    def __init__(self, candidates: list[OfferKeys] | None = None) -> None:
        self._by_pair: dict[tuple[str, str], str] = {}
        for candidate in candidates or []:
            self.add(candidate)

    def add(self, candidate: OfferKeys) -> None:
        """Index a canonical offer."""
        if candidate.id is None:
            raise ValueError("Canonical candidates need an id")
        pair = (candidate.product_id, candidate.retailer_id)
        current = self._by_pair.get(pair)
        if current is None or candidate.id < current:
            self._by_pair[pair] = candidate.id

    def match(
        self, incoming: OfferKeys, existing_mapping: ExistingMapping | None = None
    ) -> MatchResult:
        if existing_mapping is not None:
            return _reuse(existing_mapping)

        offer_id = self._by_pair.get((incoming.product_id, incoming.retailer_id))
        if offer_id is not None:
            return MatchResult(offer_id, MatchMethod.PRODUCT_RETAILER_PAIR.value, 96)
        return _new()
