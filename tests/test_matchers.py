"""Tests for canonical identity matchers."""

import pytest

from catalog_ingest.normalization.matchers import (
    ExistingMapping,
    OfferKeys,
    OfferMatcher,
    PlantKeys,
    PlantMatcher,
    ProductKeys,
    ProductMatcher,
    normalize_identifier,
    normalize_name,
)


def product(id_: str | None, slug: str, brand: str | None = "b1", **identifiers: str) -> ProductKeys:
    return ProductKeys(
        id=id_, slug=slug, brand_id=brand, name=slug.title(), identifiers=dict(identifiers)
    )


class TestNormalization:
    """Tests for identifier normalization."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("T-1", "t1"), (" AB 12/x ", "ab12x"), (12345, "12345"), ("--", None), (None, None)],
    )
    def test_normalize_identifier(self, value: object, expected: str | None) -> None:
        """Test lower-casing and stripping."""
        assert normalize_identifier(value) == expected

    def test_normalize_name(self) -> None:
        """Test whitespace collapsing."""
        assert normalize_name("  Microsorum   Pteropus ") == "microsorum pteropus"
        assert normalize_name("") is None

    def test_ordered_identifiers(self) -> None:
        """Test the fixed identifier order with duplicates removed."""
        keys = ProductKeys(
            id=None,
            slug="tank-a",
            brand_id="b1",
            name="Tank A",
            model_number="M-9",
            source_entity_id="TANK-A",
            identifiers={"upc": "0001", "sku": "T1", "zcode": "Z"},
        )
        assert keys.ordered_identifiers() == ["tanka", "t1", "0001", "m9", "z"]

    def test_fingerprint(self) -> None:
        """Test brand + model fingerprints."""
        keys = ProductKeys(id=None, slug="x", brand_id="b1", name="Tank A", model="TA-20")
        assert keys.fingerprint() == "b1::ta20"
        assert ProductKeys(id=None, slug="x", brand_id=None, name="Tank").fingerprint() is None


class TestProductMatcher:
    """Tests for ProductMatcher."""

    def test_existing_mapping_wins(self) -> None:
        """Test that a linked entity never re-links."""
        matcher = ProductMatcher([product("p1", "tank-a", sku="T1")])
        mapping = ExistingMapping("p9", "admin_manual", 100)

        result = matcher.match(product(None, "tank-a", sku="T1"), mapping)

        assert (result.canonical_id, result.match_method, result.confidence) == (
            "p9",
            "admin_manual",
            100,
        )

    def test_identifier_exact(self) -> None:
        """Test a shared sku under a different slug."""
        matcher = ProductMatcher([product("p1", "tank-a", sku="T1")])

        result = matcher.match(product(None, "tank-a-alt", sku="t-1"))

        assert result.canonical_id == "p1"
        assert result.match_method == "identifier_exact"
        assert result.confidence == 100

    def test_slug_counts_as_identifier(self) -> None:
        """Test matching on the slug alone."""
        matcher = ProductMatcher([product("p1", "tank-a")])
        assert matcher.match(product(None, "tank-a")).canonical_id == "p1"

    def test_ambiguous_identifier_is_skipped(self) -> None:
        """Test that an identifier shared by two rows proves nothing."""
        matcher = ProductMatcher(
            [product("p1", "tank-a", brand="b1", sku="DUP"), product("p2", "tank-b", brand="b2", sku="DUP")]
        )

        result = matcher.match(product(None, "tank-c", brand="b3", sku="DUP"))

        assert result.is_new
        assert result.match_method == "new_canonical"
        assert result.confidence == 80

    def test_ambiguous_identifier_falls_through_to_next(self) -> None:
        """Test that a later unique identifier still matches."""
        matcher = ProductMatcher(
            [product("p1", "tank-a", sku="DUP", upc="U1"), product("p2", "tank-b", sku="DUP")]
        )
        assert matcher.match(product(None, "tank-c", sku="DUP", upc="U1")).canonical_id == "p1"

    def test_fingerprint_match(self) -> None:
        """Test a brand + name match without shared identifiers."""
        matcher = ProductMatcher([ProductKeys(id="p1", slug="b", brand_id="b1", name="Nano Tank")])

        result = matcher.match(ProductKeys(id=None, slug="c", brand_id="b1", name="nano tank"))

        assert result.canonical_id == "p1"
        assert result.match_method == "brand_model_fingerprint"
        assert result.confidence == 92

    def test_ambiguous_fingerprint_creates_new(self) -> None:
        """Test that a fingerprint shared by two rows does not pick one."""
        candidates = [
            ProductKeys(id="p2", slug="a", brand_id="b1", name="Nano Tank"),
            ProductKeys(id="p1", slug="b", brand_id="b1", name="Nano Tank"),
        ]
        matcher = ProductMatcher(candidates)

        result = matcher.match(ProductKeys(id=None, slug="c", brand_id="b1", name="nano tank"))

        assert result.is_new
        assert result.match_method == "new_canonical"

    def test_same_inputs_same_answer(self) -> None:
        """Test determinism regardless of candidate order."""
        rows = [product("p2", "x", sku="S"), product("p1", "y", upc="U")]
        incoming = product(None, "z", sku="S", upc="U")
        assert (
            ProductMatcher(rows).match(incoming)
            == ProductMatcher(list(reversed(rows))).match(incoming)
        )

    def test_added_rows_are_matched(self) -> None:
        """Test add() during a pass."""
        matcher = ProductMatcher()
        assert matcher.match(product(None, "tank-a")).is_new
        matcher.add(product("p1", "tank-a"))
        assert matcher.match(product(None, "tank-a")).canonical_id == "p1"

    def test_add_requires_id(self) -> None:
        """Test that only canonical rows can be indexed."""
        with pytest.raises(ValueError):
            ProductMatcher().add(product(None, "tank-a"))


class TestPlantMatcher:
    """Tests for PlantMatcher."""

    def test_scientific_name_before_slug(self) -> None:
        """Test match order."""
        matcher = PlantMatcher(
            [PlantKeys("pl1", "java-fern", "Microsorum pteropus"), PlantKeys("pl2", "fern", None)]
        )

        result = matcher.match(PlantKeys(None, "fern", "microsorum  PTEROPUS"))

        assert result.canonical_id == "pl1"
        assert result.match_method == "scientific_name_exact"
        assert result.confidence == 97

    def test_slug(self) -> None:
        """Test slug fallback."""
        matcher = PlantMatcher([PlantKeys("pl1", "java-fern", None)])

        result = matcher.match(PlantKeys(None, "java-fern", "Unknown species"))

        assert result.match_method == "slug_exact"
        assert result.confidence == 94

    def test_new(self) -> None:
        """Test no match."""
        assert PlantMatcher().match(PlantKeys(None, "anubias", None)).is_new


class TestOfferMatcher:
    """Tests for OfferMatcher."""

    def test_product_retailer_pair(self) -> None:
        """Test the pair lookup."""
        matcher = OfferMatcher([OfferKeys("o1", "p1", "r1")])

        result = matcher.match(OfferKeys(None, "p1", "r1"))

        assert result.canonical_id == "o1"
        assert result.match_method == "product_retailer_pair"
        assert result.confidence == 96
        assert matcher.match(OfferKeys(None, "p1", "r2")).is_new

    def test_lowest_id_wins_on_duplicates(self) -> None:
        """Test deterministic duplicates."""
        matcher = OfferMatcher([OfferKeys("o2", "p1", "r1"), OfferKeys("o1", "p1", "r1")])
        assert matcher.match(OfferKeys(None, "p1", "r1")).canonical_id == "o1"
