"""
Normalization
=============

Turns the latest ingestion snapshots into canonical catalog rows:
identity resolution (matchers), override-aware field merge (overrides)
and canonical/mapping upserts (normalizer).
"""

from catalog_ingest.normalization.matchers import (
    ExistingMapping,
    MatchResult,
    OfferMatcher,
    PlantMatcher,
    ProductMatcher,
)
from catalog_ingest.normalization.normalizer import NormalizationSummary, Normalizer

__all__ = [
    "ExistingMapping",
    "MatchResult",
    "NormalizationSummary",
    "Normalizer",
    "OfferMatcher",
    "PlantMatcher",
    "ProductMatcher",
]
