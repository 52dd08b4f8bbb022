"""SQLAlchemy ORM models for the catalog.

These models define the canonical catalog tables:
- CategoryDB, BrandDB, RetailerDB (reference entities)
- ProductDB, PlantDB, OfferDB (canonical entities)
- PriceHistoryDB, OfferSummaryDB (offer observations and rollups)
- BuildDB, BuildItemDB (downstream references to canonical rows)
- AdminLogDB (audit trail of catalog mutations)

Ingestion tables live in models_ingestion.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from catalog_ingest.core.clock import utc_now


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return utc_now()


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Reference Entities
# ============================================================================


class CategoryDB(Base):
    """Product category (tanks, filters, lights, ...)."""

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return f"<CategoryDB(id={self.id}, slug='{self.slug}')>"


class BrandDB(Base):
    """Manufacturer brand."""

    __tablename__ = "brands"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return f"<BrandDB(id={self.id}, slug='{self.slug}')>"


class RetailerDB(Base):
    """Store selling products."""

    __tablename__ = "retailers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return f"<RetailerDB(id={self.id}, slug='{self.slug}')>"


# ============================================================================
# Canonical Entities
# ============================================================================


class ProductDB(Base):
    """
    Canonical product row.

    Written by the normalizer and by admin overrides only.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    category_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("categories.id"), nullable=False, index=True
    )
    brand_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("brands.id"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_urls_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    specs_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    meta_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    source: Mapped[str] = mapped_column(String(50), default="manual")
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return f"<ProductDB(id={self.id}, slug='{self.slug}')>"


class PlantDB(Base):
    """Canonical aquarium plant row."""

    __tablename__ = "plants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    common_name: Mapped[str] = mapped_column(String(255), nullable=False)
    scientific_name: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    slug: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    family: Mapped[str | None] = mapped_column(String(120), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_urls_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    light_demand: Mapped[str] = mapped_column(String(20), nullable=False)
    co2_demand: Mapped[str] = mapped_column(String(20), nullable=False)
    growth_rate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    placement: Mapped[str] = mapped_column(String(30), nullable=False)
    temp_min_f: Mapped[float | None] = mapped_column(Float, nullable=True)
    temp_max_f: Mapped[float | None] = mapped_column(Float, nullable=True)
    ph_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    ph_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_height_in: Mapped[float | None] = mapped_column(Float, nullable=True)
    propagation: Mapped[str | None] = mapped_column(Text, nullable=True)
    compatible_livestock_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    shrimp_safe: Mapped[bool] = mapped_column(Boolean, default=True)
    beginner_friendly: Mapped[bool] = mapped_column(Boolean, default=False)
    sources_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return f"<PlantDB(id={self.id}, slug='{self.slug}')>"


class OfferDB(Base):
    """Canonical offer: one row per product and retailer."""

    __tablename__ = "offers"
    __table_args__ = (UniqueConstraint("product_id", "retailer_id", name="uq_offers_product_retailer"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False, index=True
    )
    retailer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("retailers.id"), nullable=False, index=True
    )
    price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    affiliate_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    last_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    def __repr__(self) -> str:
        return f"<OfferDB(id={self.id}, product_id={self.product_id}, retailer_id={self.retailer_id})>"


class PriceHistoryDB(Base):
    """Observed price and stock change for an offer."""

    __tablename__ = "price_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    offer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("offers.id"), nullable=False, index=True
    )
    price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


class OfferSummaryDB(Base):
    """Denormalized per-product offer rollup. Always recomputable from offers."""

    __tablename__ = "offer_summaries"

    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), primary_key=True
    )
    min_price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    in_stock_count: Mapped[int] = mapped_column(Integer, default=0)
    stale_flag: Mapped[bool] = mapped_column(Boolean, default=True)
    checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


# ============================================================================
# Builds
# ============================================================================


class BuildDB(Base):
    """User build that references canonical products and plants."""

    __tablename__ = "builds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


class BuildItemDB(Base):
    """One part of a build: exactly one of product or plant."""

    __tablename__ = "build_items"
    __table_args__ = (
        CheckConstraint(
            "(product_id IS NULL) <> (plant_id IS NULL)", name="ck_build_items_one_target"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    build_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("builds.id"), nullable=False, index=True
    )
    product_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=True, index=True
    )
    plant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("plants.id"), nullable=True, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


# ============================================================================
# Audit
# ============================================================================


class AdminLogDB(Base):
    """Append-only audit row for catalog mutations."""

    __tablename__ = "admin_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    actor_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    meta_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    def __repr__(self) -> str:
        return f"<AdminLogDB(id={self.id}, action='{self.action}')>"
