"""Row builders and seed documents shared by tests."""

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from catalog_ingest.db.models import BrandDB, CategoryDB, OfferDB, ProductDB, RetailerDB


@dataclass
class Catalog:
    """Reference rows most tests build on."""

    category: CategoryDB
    brand: BrandDB
    retailer: RetailerDB


def make_catalog(session: Session) -> Catalog:
    category = CategoryDB(slug="tanks", name="Tanks")
    brand = BrandDB(slug="acme", name="Acme Aquatics")
    retailer = RetailerDB(slug="shop-a", name="Shop A", website_url="https://shop-a.example")
    session.add_all([category, brand, retailer])
    session.commit()
    return Catalog(category=category, brand=brand, retailer=retailer)


def make_product(
    session: Session, catalog: Catalog, slug: str = "tank-a", status: str = "active"
) -> ProductDB:
    """Insert a canonical product directly, bypassing normalization."""
    product = ProductDB(
        category_id=catalog.category.id,
        brand_id=catalog.brand.id,
        name=slug.replace("-", " ").title(),
        slug=slug,
        status=status,
    )
    session.add(product)
    session.commit()
    return product


def make_retailer(session: Session, slug: str) -> RetailerDB:
    retailer = RetailerDB(slug=slug, name=slug.title())
    session.add(retailer)
    session.commit()
    return retailer


def make_offer(
    session: Session,
    product: ProductDB,
    retailer: RetailerDB,
    url: str | None = "https://shop-a.example/p/1",
    **values: Any,
) -> OfferDB:
    """Insert a canonical offer directly."""
    offer = OfferDB(product_id=product.id, retailer_id=retailer.id, url=url, **values)
    session.add(offer)
    session.commit()
    return offer


def product_record(slug: str = "tank-a", **values: Any) -> dict[str, Any]:
    record = {
        "category_slug": "tanks",
        "brand_slug": "acme",
        "name": slug.replace("-", " ").title(),
        "slug": slug,
    }
    record.update(values)
    return record


def seed_document(**sections: Any) -> dict[str, Any]:
    """A small, valid seed document. Keyword arguments replace whole sections."""
    document: dict[str, Any] = {
        "categories": [{"slug": "tanks", "name": "Tanks"}],
        "brands": [{"slug": "acme", "name": "Acme Aquatics"}],
        "retailers": [{"slug": "shop-a", "name": "Shop A"}],
        "products": [
            product_record(
                "tank-a",
                sku="T1",
                image_url="https://img.example/tank-a.jpg",
                specs={"volume_gallons": 20},
            )
        ],
        "plants": [
            {
                "common_name": "Java Fern",
                "scientific_name": "Microsorum pteropus",
                "slug": "java-fern",
                "difficulty": "easy",
                "light_demand": "low",
                "co2_demand": "low",
                "placement": "epiphyte",
            }
        ],
        "offers": [
            {
                "product_slug": "tank-a",
                "retailer_slug": "shop-a",
                "price_cents": 12999,
                "url": "https://shop-a.example/p/tank-a",
                "in_stock": True,
            }
        ],
    }
    document.update(sections)
    return document
