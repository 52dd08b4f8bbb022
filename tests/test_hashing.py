"""Tests for canonical JSON and content hashing."""

from datetime import UTC, datetime

from catalog_ingest.ingestion.hashing import content_hash, sha256_hex, stable_json_dumps


class TestStableJson:
    """Tests for stable_json_dumps."""

    def test_key_order_does_not_matter(self) -> None:
        """Test that nested key order is canonicalized."""
        a = {"b": 1, "a": {"y": 2, "x": [3, {"k": 1, "j": 2}]}}
        b = {"a": {"x": [3, {"j": 2, "k": 1}], "y": 2}, "b": 1}
        assert stable_json_dumps(a) == stable_json_dumps(b)

    def test_compact_output(self) -> None:
        """Test that separators carry no whitespace."""
        assert stable_json_dumps({"b": [1, 2], "a": None}) == '{"a":null,"b":[1,2]}'

    def test_list_order_matters(self) -> None:
        """Test that list order is preserved."""
        assert stable_json_dumps([1, 2]) != stable_json_dumps([2, 1])

    def test_datetimes_are_iso_strings(self) -> None:
        """Test datetime serialization."""
        when = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
        assert stable_json_dumps({"at": when}) == '{"at":"2026-10-19T12:00:00+00:00"}'


class TestContentHash:
    """Tests for content_hash."""

    def test_sha256_of_empty_string(self) -> None:
        """Test the digest against a known value."""
        assert sha256_hex("") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_equal_payloads_hash_equal(self) -> None:
        """Test hashing is independent of key order."""
        assert content_hash({"price": 10, "sku": "T1"}) == content_hash({"sku": "T1", "price": 10})

    def test_different_payloads_hash_differently(self) -> None:
        """Test that a changed value changes the hash."""
        assert content_hash({"price": 10}) != content_hash({"price": 11})
        assert len(content_hash({"price": 10})) == 64
