"""
Admin CLI Commands
==================

Provenance audit, offer summaries, overrides and manual mappings.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich import print as rprint
from rich.table import Table
from sqlalchemy import select

from catalog_ingest.cli.common import console, open_session, parse_json_option, print_json
from catalog_ingest.core.enums import CanonicalType
from catalog_ingest.db.models import ProductDB
from catalog_ingest.services.mapping_service import MappingService
from catalog_ingest.services.offer_summaries import OfferSummaryService
from catalog_ingest.services.override_service import OverrideService, value_preview
from catalog_ingest.services.provenance import ProvenanceAuditor

summaries_app = typer.Typer(help="Offer summary commands")
overrides_app = typer.Typer(help="Normalization override commands")
mappings_app = typer.Typer(help="Canonical mapping commands")


def audit() -> None:
    """
    Report canonical rows without ingestion provenance.

    Exits with code 1 when user-visible rows are affected.

    Examples:
        catalog-ingest audit
    """
    with open_session() as session:
        report = ProvenanceAuditor(session).audit()

    print_json(report.to_dict())
    if report.has_displayed_violations:
        rprint("[red]Displayed rows without provenance found[/red]")
        raise typer.Exit(1)
    rprint("[green]No displayed provenance violations[/green]")


# Summaries subcommands


@summaries_app.command("refresh")
def refresh_summaries(
    product_ids: Optional[list[str]] = typer.Option(
        None, "--product", "-p", help="Product id (repeatable); all products when omitted"
    ),
) -> None:
    """
    Recompute offer summaries.

    Examples:
        catalog-ingest summaries refresh
        catalog-ingest summaries refresh -p 0b6f... -p 7c1a...
    """
    with open_session() as session:
        ids = product_ids or list(session.execute(select(ProductDB.id)).scalars())
        written = OfferSummaryService(session).refresh_for_product_ids(ids)
    rprint(f"Refreshed {written} offer summaries ({len(ids)} products scanned)")


# Overrides subcommands


@overrides_app.command("list")
def list_overrides(
    canonical_type: Optional[CanonicalType] = typer.Option(None, "--type", "-t"),
    canonical_id: Optional[str] = typer.Option(None, "--id"),
) -> None:
    """
    List normalization overrides.

    Examples:
        catalog-ingest overrides list --type product
    """
    with open_session() as session:
        overrides = OverrideService(session).list_overrides(canonical_type, canonical_id)

    if not overrides:
        rprint("[yellow]No overrides[/yellow]")
        return

    table = Table(title="Normalization Overrides")
    table.add_column("Id", style="dim")
    table.add_column("Target", style="bold")
    table.add_column("Field")
    table.add_column("Value")
    table.add_column("Reason")
    for item in overrides:
        table.add_row(
            item.id,
            f"{item.canonical_type}:{item.canonical_id}",
            item.field_path,
            value_preview(item.value),
            item.reason,
        )
    console.print(table)


@overrides_app.command("set")
def set_override(
    canonical_type: CanonicalType = typer.Argument(..., help="product, plant or offer"),
    canonical_id: str = typer.Argument(..., help="Canonical row id"),
    field_path: str = typer.Argument(..., help="Dotted field path, e.g. specs.volume_gallons"),
    value: str = typer.Argument(..., help="JSON value"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the correction is needed"),
    actor: str = typer.Option(..., "--actor", "-a", help="Admin user id"),
) -> None:
    """
    Create an override, or update the one already on that field.

    Examples:
        catalog-ingest overrides set product 0b6f... name '"Tank A Pro"' -r "Vendor typo" -a admin-1
    """
    parsed = parse_json_option(value, "VALUE")
    with open_session() as session:
        service = OverrideService(session)
        existing = [
            o for o in service.list_overrides(canonical_type, canonical_id) if o.field_path == field_path
        ]
        if existing:
            result = service.update_override(
                existing[0].id, canonical_type, canonical_id, field_path, parsed, reason, actor
            )
            rprint(f"[green]Updated[/green] override {result.id}")
        else:
            result = service.create_override(
                canonical_type, canonical_id, field_path, parsed, reason, actor
            )
            rprint(f"[green]Created[/green] override {result.id}")


@overrides_app.command("delete")
def delete_override(
    override_id: str = typer.Argument(..., help="Override id"),
    actor: str = typer.Option(..., "--actor", "-a", help="Admin user id"),
) -> None:
    """
    Delete an override.

    Examples:
        catalog-ingest overrides delete 5d2e... -a admin-1
    """
    with open_session() as session:
        OverrideService(session).delete_override(override_id, actor)
    rprint(f"[yellow]Deleted[/yellow] override {override_id}")


# Mappings subcommands


@mappings_app.command("map")
def map_entity(
    entity_id: str = typer.Argument(..., help="Ingestion entity id"),
    canonical_type: CanonicalType = typer.Argument(..., help="product, plant or offer"),
    canonical_id: str = typer.Argument(..., help="Canonical row id"),
    reason: Optional[str] = typer.Option(None, "--reason", "-r"),
    actor: Optional[str] = typer.Option(None, "--actor", "-a", help="Admin user id"),
) -> None:
    """
    Link an ingestion entity to a canonical row.

    Examples:
        catalog-ingest mappings map 9a1c... product 0b6f... -r "Same tank, new SKU"
    """
    with open_session() as session:
        MappingService(session).map_entity(entity_id, canonical_type, canonical_id, actor, reason)
    rprint(f"[green]Mapped[/green] {entity_id} -> {canonical_type.value}:{canonical_id}")


@mappings_app.command("unmap")
def unmap_entity(
    entity_id: str = typer.Argument(..., help="Ingestion entity id"),
    actor: Optional[str] = typer.Option(None, "--actor", "-a", help="Admin user id"),
) -> None:
    """
    Remove an ingestion entity's mapping.

    Examples:
        catalog-ingest mappings unmap 9a1c...
    """
    with open_session() as session:
        MappingService(session).unmap_entity(entity_id, actor)
    rprint(f"[yellow]Unmapped[/yellow] {entity_id}")
