"""
Source Registry Module
======================

Loads ingestion source definitions and global settings from a YAML file.
Definitions are synced into the ingestion_sources table, where the
scheduler and worker read them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from catalog_ingest.core.enums import TrustLevel

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "sources.yaml"
CONFIG_PATH_ENV = "CATALOG_SOURCES_CONFIG"


@dataclass
class SourceDefinition:
    """Declared ingestion source."""

    slug: str
    name: str
    kind: str
    default_trust: str = TrustLevel.UNKNOWN.value
    schedule_every_minutes: int | None = None
    active: bool = True
    config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceDefinition:
        """Create from dictionary."""
        schedule = data.get("schedule_every_minutes")
        trust = data.get("default_trust", TrustLevel.UNKNOWN.value)
        return cls(
            slug=data["slug"],
            name=data.get("name", data["slug"]),
            kind=data["kind"],
            default_trust=TrustLevel(trust).value,
            schedule_every_minutes=int(schedule) if schedule is not None else None,
            active=bool(data.get("active", True)),
            config=data.get("config") or {},
        )


@dataclass
class GlobalConfig:
    """Global configuration settings."""

    user_agent: str = "CatalogIngest/0.1"
    offer_stale_after_hours: int = 24
    reap_running_after_minutes: int = 45
    worker_max_jobs: int = 25
    scheduler_limit_sources: int = 50

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            user_agent=data.get("user_agent", "CatalogIngest/0.1"),
            offer_stale_after_hours=int(data.get("offer_stale_after_hours", 24)),
            reap_running_after_minutes=int(data.get("reap_running_after_minutes", 45)),
            worker_max_jobs=int(data.get("worker_max_jobs", 25)),
            scheduler_limit_sources=int(data.get("scheduler_limit_sources", 50)),
        )


class SourceRegistry:
    """
    Registry of source definitions loaded from YAML.

    Example sources.yaml:
        global:
          user_agent: CatalogIngest/0.1
        sources:
          - slug: offers-head
            kind: offers_head
            schedule_every_minutes: 60
            config:
              jobKind: offers.head_refresh.bulk
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceDefinition] = {}
        self._global_config: GlobalConfig = GlobalConfig()
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def config_path(self) -> Path | None:
        """Path the registry was loaded from, if any."""
        return self._config_path

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the sources.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))

        self._sources.clear()
        for source_data in data.get("sources", []):
            source = SourceDefinition.from_dict(source_data)
            self._sources[source.slug] = source

    def add_source(self, source: SourceDefinition) -> None:
        """Register (or replace) a source definition."""
        self._sources[source.slug] = source

    def get_source(self, slug: str) -> SourceDefinition | None:
        """Get a source definition by slug."""
        return self._sources.get(slug)

    def list_sources(self) -> list[SourceDefinition]:
        """Get all registered sources."""
        return list(self._sources.values())


def load_registry(config_path: Path | str | None = None) -> SourceRegistry:
    """
    Load a registry from an explicit path, the CATALOG_SOURCES_CONFIG env
    var, or the bundled config/sources.yaml.

    A missing default file yields an empty registry with default settings.
    """
    registry = SourceRegistry()
    if config_path is not None:
        registry.load_config(config_path)
        return registry

    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        registry.load_config(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        registry.load_config(DEFAULT_CONFIG_PATH)
    return registry
