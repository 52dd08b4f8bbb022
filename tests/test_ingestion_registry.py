"""Tests for the source registry."""

from pathlib import Path

import pytest

from catalog_ingest.ingestion.registry import (
    CONFIG_PATH_ENV,
    GlobalConfig,
    SourceDefinition,
    SourceRegistry,
    load_registry,
)

CONFIG_YAML = """
global:
  user_agent: "TestAgent/1.0"
  worker_max_jobs: 7

sources:
  - slug: offers-head
    name: Offer availability
    kind: offers_head
    default_trust: retailer
    schedule_every_minutes: 60
    config:
      jobKind: offers.head_refresh.bulk
      jobPayload:
        limit: 10

  - slug: manual_seed
    kind: manual_seed
    default_trust: manual

  - slug: paused
    kind: offers_detail
    schedule_every_minutes: 30
    active: false
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "sources.yaml"
    path.write_text(CONFIG_YAML)
    return path


class TestSourceDefinition:
    """Tests for SourceDefinition.from_dict."""

    def test_defaults(self) -> None:
        """Test minimal definitions."""
        source = SourceDefinition.from_dict({"slug": "x", "kind": "manual_seed"})
        assert source.name == "x"
        assert source.default_trust == "unknown"
        assert source.schedule_every_minutes is None
        assert source.active is True
        assert source.config == {}

    def test_unknown_trust_level(self) -> None:
        """Test that trust levels are checked."""
        with pytest.raises(ValueError):
            SourceDefinition.from_dict({"slug": "x", "kind": "k", "default_trust": "gospel"})


class TestSourceRegistry:
    """Tests for SourceRegistry."""

    def test_load_config(self, config_file: Path) -> None:
        """Test loading sources and global settings."""
        registry = SourceRegistry()
        registry.load_config(config_file)

        assert [s.slug for s in registry.list_sources()] == ["offers-head", "manual_seed", "paused"]
        head = registry.get_source("offers-head")
        assert head.default_trust == "retailer"
        assert head.schedule_every_minutes == 60
        assert head.config["jobPayload"] == {"limit": 10}
        assert registry.global_config.user_agent == "TestAgent/1.0"
        assert registry.global_config.worker_max_jobs == 7
        assert registry.global_config.reap_running_after_minutes == 45
        assert registry.config_path == config_file.resolve()

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test loading a file that does not exist."""
        with pytest.raises(FileNotFoundError):
            SourceRegistry().load_config(tmp_path / "nope.yaml")

    def test_add_source_replaces(self) -> None:
        """Test add_source keyed by slug."""
        registry = SourceRegistry()
        registry.add_source(SourceDefinition(slug="a", name="A", kind="k"))
        registry.add_source(SourceDefinition(slug="a", name="A2", kind="k"))
        assert [s.name for s in registry.list_sources()] == ["A2"]
        assert registry.get_source("missing") is None


class TestLoadRegistry:
    """Tests for load_registry."""

    def test_explicit_path(self, config_file: Path) -> None:
        """Test an explicit path wins."""
        assert load_registry(config_file).get_source("offers-head") is not None

    def test_env_var(self, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the environment variable."""
        monkeypatch.setenv(CONFIG_PATH_ENV, str(config_file))
        assert load_registry().global_config.user_agent == "TestAgent/1.0"

    def test_global_config_defaults(self) -> None:
        """Test GlobalConfig with no data."""
        config = GlobalConfig.from_dict(None)
        assert config.offer_stale_after_hours == 24
