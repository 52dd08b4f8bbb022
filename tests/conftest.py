"""Shared fixtures: a file-backed SQLite catalog and reference rows."""

from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from catalog_ingest.db.engine import create_db_engine, create_session_factory, init_db
from tests.factories import Catalog, make_catalog


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Engine on a fresh SQLite file with all tables created."""
    engine = create_db_engine(tmp_path / "catalog.db")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """A database session for testing."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog(session: Session) -> Catalog:
    """Category, brand and retailer rows."""
    return make_catalog(session)
