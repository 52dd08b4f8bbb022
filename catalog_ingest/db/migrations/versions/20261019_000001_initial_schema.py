"""Initial catalog and ingestion schema.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

This migration creates:
- Reference tables: categories, brands, retailers
- Canonical tables: products, plants, offers
- Offer observations: price_history, offer_summaries
- Downstream references: builds, build_items
- Ingestion: sources, runs, entities, snapshots, mappings, overrides, jobs
- Audit: admin_logs
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # =========================================================================
    # Reference Entities
    # =========================================================================

    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_order", sa.Integer(), default=0),
        *_timestamps(),
    )

    op.create_table(
        "brands",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("website", sa.String(500), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "retailers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("website_url", sa.String(500), nullable=True),
        sa.Column("active", sa.Boolean(), default=True),
        *_timestamps(),
    )

    # =========================================================================
    # Canonical Entities
    # =========================================================================

    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("brand_id", sa.String(36), sa.ForeignKey("brands.id"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("image_urls_json", sa.Text(), default="[]"),
        sa.Column("specs_json", sa.Text(), default="{}"),
        sa.Column("meta_json", sa.Text(), default="{}"),
        sa.Column("status", sa.String(20), default="active"),
        sa.Column("source", sa.String(50), default="manual"),
        sa.Column("verified", sa.Boolean(), default=False),
        *_timestamps(),
    )
    op.create_index("ix_products_category_id", "products", ["category_id"])
    op.create_index("ix_products_brand_id", "products", ["brand_id"])
    op.create_index("ix_products_status", "products", ["status"])

    op.create_table(
        "plants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("common_name", sa.String(255), nullable=False),
        sa.Column("scientific_name", sa.String(255), nullable=True),
        sa.Column("slug", sa.String(200), nullable=False, unique=True),
        sa.Column("family", sa.String(120), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("image_urls_json", sa.Text(), default="[]"),
        sa.Column("difficulty", sa.String(20), nullable=False),
        sa.Column("light_demand", sa.String(20), nullable=False),
        sa.Column("co2_demand", sa.String(20), nullable=False),
        sa.Column("growth_rate", sa.String(20), nullable=True),
        sa.Column("placement", sa.String(30), nullable=False),
        sa.Column("temp_min_f", sa.Float(), nullable=True),
        sa.Column("temp_max_f", sa.Float(), nullable=True),
        sa.Column("ph_min", sa.Float(), nullable=True),
        sa.Column("ph_max", sa.Float(), nullable=True),
        sa.Column("max_height_in", sa.Float(), nullable=True),
        sa.Column("propagation", sa.Text(), nullable=True),
        sa.Column("compatible_livestock_json", sa.Text(), default="[]"),
        sa.Column("shrimp_safe", sa.Boolean(), default=True),
        sa.Column("beginner_friendly", sa.Boolean(), default=False),
        sa.Column("sources_json", sa.Text(), default="[]"),
        sa.Column("verified", sa.Boolean(), default=False),
        sa.Column("status", sa.String(20), default="active"),
        *_timestamps(),
    )
    op.create_index("ix_plants_scientific_name", "plants", ["scientific_name"])
    op.create_index("ix_plants_status", "plants", ["status"])

    op.create_table(
        "offers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("retailer_id", sa.String(36), sa.ForeignKey("retailers.id"), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(3), default="USD"),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("affiliate_url", sa.Text(), nullable=True),
        sa.Column("in_stock", sa.Boolean(), default=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("product_id", "retailer_id", name="uq_offers_product_retailer"),
    )
    op.create_index("ix_offers_product_id", "offers", ["product_id"])
    op.create_index("ix_offers_retailer_id", "offers", ["retailer_id"])

    # =========================================================================
    # Offer Observations
    # =========================================================================

    op.create_table(
        "price_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("offer_id", sa.String(36), sa.ForeignKey("offers.id"), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("in_stock", sa.Boolean(), default=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_price_history_offer_id", "price_history", ["offer_id"])

    op.create_table(
        "offer_summaries",
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id"), primary_key=True),
        sa.Column("min_price_cents", sa.Integer(), nullable=True),
        sa.Column("in_stock_count", sa.Integer(), default=0),
        sa.Column("stale_flag", sa.Boolean(), default=True),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    # =========================================================================
    # Builds
    # =========================================================================

    op.create_table(
        "builds",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_public", sa.Boolean(), default=False),
        *_timestamps(),
    )

    op.create_table(
        "build_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("build_id", sa.String(36), sa.ForeignKey("builds.id"), nullable=False),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id"), nullable=True),
        sa.Column("plant_id", sa.String(36), sa.ForeignKey("plants.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), default=1),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(product_id IS NULL) <> (plant_id IS NULL)", name="ck_build_items_one_target"
        ),
    )
    op.create_index("ix_build_items_build_id", "build_items", ["build_id"])
    op.create_index("ix_build_items_product_id", "build_items", ["product_id"])
    op.create_index("ix_build_items_plant_id", "build_items", ["plant_id"])

    # =========================================================================
    # Ingestion
    # =========================================================================

    op.create_table(
        "ingestion_sources",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("schedule_every_minutes", sa.Integer(), nullable=True),
        sa.Column("config_json", sa.Text(), default="{}"),
        sa.Column("active", sa.Boolean(), default=True),
        sa.Column("default_trust", sa.String(30), default="unknown"),
        *_timestamps(),
    )
    op.create_index("ix_ingestion_sources_active", "ingestion_sources", ["active"])

    op.create_table(
        "ingestion_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "source_id", sa.String(36), sa.ForeignKey("ingestion_sources.id"), nullable=False
        ),
        sa.Column("status", sa.String(20), default="running"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stats_json", sa.Text(), default="{}"),
        sa.Column("error", sa.Text(), nullable=True),
    )
    op.create_index("ix_ingestion_runs_source_id", "ingestion_runs", ["source_id"])
    op.create_index("ix_ingestion_runs_status", "ingestion_runs", ["status"])

    op.create_table(
        "ingestion_entities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "source_id", sa.String(36), sa.ForeignKey("ingestion_sources.id"), nullable=False
        ),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("source_entity_id", sa.String(255), nullable=False),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), default=True),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meta_json", sa.Text(), default="{}"),
        *_timestamps(),
        sa.UniqueConstraint(
            "source_id", "entity_type", "source_entity_id", name="uq_ingestion_entities_key"
        ),
    )
    op.create_index("ix_ingestion_entities_source_id", "ingestion_entities", ["source_id"])
    op.create_index("ix_ingestion_entities_entity_type", "ingestion_entities", ["entity_type"])

    op.create_table(
        "ingestion_entity_snapshots",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "entity_id", sa.String(36), sa.ForeignKey("ingestion_entities.id"), nullable=False
        ),
        sa.Column("run_id", sa.String(36), sa.ForeignKey("ingestion_runs.id"), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("raw_json", sa.Text(), nullable=False),
        sa.Column("extracted_json", sa.Text(), default="{}"),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("trust_json", sa.Text(), default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("entity_id", "content_hash", name="uq_snapshots_entity_hash"),
    )
    op.create_index(
        "ix_snapshots_entity_fetched", "ingestion_entity_snapshots", ["entity_id", "fetched_at"]
    )
    op.create_index(
        "ix_ingestion_entity_snapshots_run_id", "ingestion_entity_snapshots", ["run_id"]
    )

    op.create_table(
        "canonical_entity_mappings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "entity_id",
            sa.String(36),
            sa.ForeignKey("ingestion_entities.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("canonical_type", sa.String(20), nullable=False),
        sa.Column("canonical_id", sa.String(36), nullable=False),
        sa.Column("match_method", sa.String(50), nullable=False),
        sa.Column("confidence", sa.Integer(), default=0),
        sa.Column("notes_json", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_mappings_canonical", "canonical_entity_mappings", ["canonical_type", "canonical_id"]
    )

    op.create_table(
        "normalization_overrides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("canonical_type", sa.String(20), nullable=False),
        sa.Column("canonical_id", sa.String(36), nullable=False),
        sa.Column("field_path", sa.String(200), nullable=False),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_by_user_id", sa.String(36), nullable=True),
        sa.Column("updated_by_user_id", sa.String(36), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "canonical_type", "canonical_id", "field_path", name="uq_overrides_field"
        ),
    )
    op.create_index(
        "ix_normalization_overrides_canonical_id", "normalization_overrides", ["canonical_id"]
    )

    op.create_table(
        "ingestion_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("kind", sa.String(100), nullable=False),
        sa.Column("payload_json", sa.Text(), default="{}"),
        sa.Column("idempotency_key", sa.String(255), nullable=True, unique=True),
        sa.Column("priority", sa.Integer(), default=0),
        sa.Column("status", sa.String(20), default="queued"),
        sa.Column("run_after", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer(), default=0),
        sa.Column("max_attempts", sa.Integer(), default=5),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(120), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_jobs_claim", "ingestion_jobs", ["status", "run_after", "priority"])
    op.create_index("ix_ingestion_jobs_kind", "ingestion_jobs", ["kind"])

    # =========================================================================
    # Audit
    # =========================================================================

    op.create_table(
        "admin_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("actor_user_id", sa.String(36), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(36), nullable=True),
        sa.Column("meta_json", sa.Text(), default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_admin_logs_action", "admin_logs", ["action"])
    op.create_index("ix_admin_logs_target_id", "admin_logs", ["target_id"])


def downgrade() -> None:
    for table in (
        "admin_logs",
        "ingestion_jobs",
        "normalization_overrides",
        "canonical_entity_mappings",
        "ingestion_entity_snapshots",
        "ingestion_entities",
        "ingestion_runs",
        "ingestion_sources",
        "build_items",
        "builds",
        "offer_summaries",
        "price_history",
        "offers",
        "plants",
        "products",
        "retailers",
        "brands",
        "categories",
    ):
        op.drop_table(table)
