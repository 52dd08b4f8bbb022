"""Pydantic v2 models for everything that crosses the pipeline boundary.

These models validate:
- Job payloads, one closed model per JobKind
- Scheduler configuration stored on ingestion sources
- Seed records (products, plants, offers) and reference rows
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from catalog_ingest.core.enums import CatalogStatus, JobKind
from catalog_ingest.core.errors import ValidationError

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"

DEFAULT_MAX_ATTEMPTS = 5


# ============================================================================
# Job Payloads
# ============================================================================


class _JobPayload(BaseModel):
    """Job payloads use camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


class HeadRefreshBulkPayload(_JobPayload):
    """Availability check over offers not checked recently."""

    older_than_days: int = Field(default=2, ge=0, le=365)
    older_than_hours: int | None = Field(default=None, ge=0, le=24 * 365)
    limit: int = Field(default=30, ge=1, le=500)
    timeout_ms: int = Field(default=6000, ge=500, le=30000)


class HeadRefreshOnePayload(_JobPayload):
    """Availability check for a single offer."""

    offer_id: str = Field(pattern=r"^[0-9a-fA-F-]{36}$")
    timeout_ms: int = Field(default=6000, ge=500, le=30000)


class DetailRefreshBulkPayload(_JobPayload):
    """Price and stock refresh over offers not checked recently."""

    older_than_days: int | None = Field(default=None, ge=0, le=365)
    older_than_hours: int | None = Field(default=None, ge=0, le=24 * 365)
    limit: int = Field(default=30, ge=1, le=500)
    timeout_ms: int = Field(default=12000, ge=500, le=30000)


class DetailRefreshOnePayload(_JobPayload):
    """Price and stock refresh for a single offer."""

    offer_id: str = Field(pattern=r"^[0-9a-fA-F-]{36}$")
    timeout_ms: int = Field(default=12000, ge=500, le=30000)


JOB_PAYLOAD_MODELS: dict[JobKind, type[_JobPayload]] = {
    JobKind.OFFERS_HEAD_REFRESH_BULK: HeadRefreshBulkPayload,
    JobKind.OFFERS_HEAD_REFRESH_ONE: HeadRefreshOnePayload,
    JobKind.OFFERS_DETAIL_REFRESH_BULK: DetailRefreshBulkPayload,
    JobKind.OFFERS_DETAIL_REFRESH_ONE: DetailRefreshOnePayload,
}


def parse_job_kind(kind: str | JobKind) -> JobKind:
    """Resolve a job kind string, raising ValidationError if unknown."""
    try:
        return JobKind(kind)
    except ValueError as e:
        raise ValidationError(f"Unknown job kind: {kind}") from e


def parse_job_payload(kind: str | JobKind, payload: dict[str, Any] | None) -> _JobPayload:
    """
    Validate a job payload against the model registered for its kind.

    Args:
        kind: Job kind
        payload: Raw payload dictionary (camelCase keys)

    Returns:
        Validated payload model

    Raises:
        ValidationError: If the kind is unknown or the payload is malformed
    """
    job_kind = parse_job_kind(kind)
    model = JOB_PAYLOAD_MODELS[job_kind]
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid payload for {job_kind.value}: {e}") from e


# ============================================================================
# Scheduler Config
# ============================================================================


class ScheduleConfig(BaseModel):
    """The scheduling part of an ingestion source's config."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    job_kind: JobKind
    job_payload: dict[str, Any] = Field(default_factory=dict)
    idempotency_prefix: str | None = Field(default=None, min_length=1, max_length=200)


# ============================================================================
# Seed Records
# ============================================================================


class CategorySeed(BaseModel):
    """Reference category row."""

    slug: str = Field(pattern=SLUG_PATTERN)
    name: str = Field(min_length=1)
    display_order: int = 0


class BrandSeed(BaseModel):
    """Reference brand row."""

    slug: str = Field(pattern=SLUG_PATTERN)
    name: str = Field(min_length=1)
    website: str | None = None


class RetailerSeed(BaseModel):
    """Reference retailer row."""

    slug: str = Field(pattern=SLUG_PATTERN)
    name: str = Field(min_length=1)
    website_url: str | None = None
    active: bool = True


class ProductSeed(BaseModel):
    """A product record as delivered by a seed source."""

    category_slug: str = Field(min_length=1)
    brand_slug: str = Field(min_length=1)
    brand_name: str | None = None
    name: str = Field(min_length=1)
    slug: str = Field(pattern=SLUG_PATTERN)
    model: str | None = None
    model_number: str | None = None
    sku: str | None = None
    upc: str | None = None
    ean: str | None = None
    gtin: str | None = None
    mpn: str | None = None
    asin: str | None = None
    description: str | None = None
    image_url: str | None = None
    image_urls: list[str] | None = None
    specs: dict[str, Any] = Field(default_factory=dict)
    identifiers: dict[str, str] = Field(default_factory=dict)
    sources: list[str] = Field(default_factory=list)
    source_notes: str | None = None
    verified: bool = False
    curated_rank: int | None = None
    status: CatalogStatus = CatalogStatus.ACTIVE

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        """Ensure product name is not blank."""
        if not v.strip():
            raise ValueError("name cannot be blank")
        return v.strip()


class PlantSeed(BaseModel):
    """A plant record as delivered by a seed source."""

    common_name: str = Field(min_length=1)
    scientific_name: str | None = None
    slug: str = Field(pattern=SLUG_PATTERN)
    family: str | None = None
    description: str | None = None
    image_url: str | None = None
    image_urls: list[str] | None = None
    difficulty: str = Field(min_length=1)
    light_demand: str = Field(min_length=1)
    co2_demand: str = Field(min_length=1)
    growth_rate: str | None = None
    placement: str = Field(min_length=1)
    temp_min_f: float | None = None
    temp_max_f: float | None = None
    ph_min: float | None = None
    ph_max: float | None = None
    max_height_in: float | None = None
    propagation: str | None = None
    compatible_livestock: list[str] = Field(default_factory=list)
    shrimp_safe: bool = True
    beginner_friendly: bool = False
    sources: list[str] = Field(default_factory=list)
    verified: bool = False
    status: CatalogStatus = CatalogStatus.ACTIVE


class OfferSeed(BaseModel):
    """An offer record as delivered by a seed source."""

    product_slug: str = Field(min_length=1)
    retailer_slug: str = Field(min_length=1)
    price_cents: int | None = Field(default=None, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    url: str | None = None
    affiliate_url: str | None = None
    in_stock: bool = True
    last_checked_at: datetime | None = None

    @field_validator("currency")
    @classmethod
    def currency_upper(cls, v: str) -> str:
        """Normalize currency codes to upper case."""
        return v.upper()


def validate_record(model: type[BaseModel], data: Any, label: str) -> Any:
    """Validate one record, converting pydantic errors into ValidationError."""
    if not isinstance(data, dict):
        raise ValidationError(f"{label}: expected an object, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"{label}: {e}") from e
