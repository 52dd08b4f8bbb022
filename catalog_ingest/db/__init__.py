"""Database layer for the catalog ingestion pipeline."""

from catalog_ingest.db.engine import (
    create_db_engine,
    create_session_factory,
    get_database_url,
    init_db,
    run_migrations,
    session_scope,
)
from catalog_ingest.db import models_ingestion  # noqa: F401  (registers ingestion tables)
from catalog_ingest.db.models import Base

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "get_database_url",
    "init_db",
    "run_migrations",
    "session_scope",
]
