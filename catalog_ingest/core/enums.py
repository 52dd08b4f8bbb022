"""Enums for ingestion and catalog fields."""

from enum import Enum


class EntityType(str, Enum):
    """Type of catalog item an ingestion entity describes."""

    PRODUCT = "product"
    PLANT = "plant"
    OFFER = "offer"


class CanonicalType(str, Enum):
    """Canonical tables that overrides and mappings may target."""

    PRODUCT = "product"
    PLANT = "plant"
    OFFER = "offer"


class RunStatus(str, Enum):
    """Status of an ingestion run."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class JobStatus(str, Enum):
    """Status of a queued ingestion job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class JobKind(str, Enum):
    """Every job kind the worker knows how to run."""

    OFFERS_HEAD_REFRESH_BULK = "offers.head_refresh.bulk"
    OFFERS_HEAD_REFRESH_ONE = "offers.head_refresh.one"
    OFFERS_DETAIL_REFRESH_BULK = "offers.detail_refresh.bulk"
    OFFERS_DETAIL_REFRESH_ONE = "offers.detail_refresh.one"


class MatchMethod(str, Enum):
    """How an ingestion entity was linked to its canonical row."""

    IDENTIFIER_EXACT = "identifier_exact"
    BRAND_MODEL_FINGERPRINT = "brand_model_fingerprint"
    SCIENTIFIC_NAME_EXACT = "scientific_name_exact"
    SLUG_EXACT = "slug_exact"
    PRODUCT_RETAILER_PAIR = "product_retailer_pair"
    OFFER_ID = "offer_id"
    ADMIN_MANUAL = "admin_manual"
    NEW_CANONICAL = "new_canonical"


class TrustLevel(str, Enum):
    """How much a source's values are trusted."""

    MANUAL = "manual"
    RETAILER = "retailer"
    MANUFACTURER = "manufacturer"
    COMMUNITY = "community"
    UNKNOWN = "unknown"


class CatalogStatus(str, Enum):
    """Visibility of a canonical row. Only active rows are displayed."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"
