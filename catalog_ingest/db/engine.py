"""Database engine and session management.

The engine is created by the process entry point (CLI, worker, tests) and
handed to components explicitly. Nothing here caches a global engine.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

# Default database path (can be overridden via environment variable)
DEFAULT_DB_PATH = Path.home() / ".catalog_ingest" / "catalog.db"

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def get_database_url(database: Path | str | None = None) -> str:
    """
    Resolve the database URL.

    Args:
        database: Optional SQLAlchemy URL or SQLite file path. If None, uses
                  the DATABASE_URL env var or the default path.

    Returns:
        SQLAlchemy connection URL.
    """
    if database is None:
        database = os.environ.get("DATABASE_URL") or DEFAULT_DB_PATH

    value = str(database)
    if "://" in value:
        return value

    path = Path(value)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def create_db_engine(database: Path | str | None = None, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine.

    SQLite connections get a generous busy timeout so concurrent workers
    wait for each other's short claim transactions instead of failing.

    Args:
        database: Optional SQLAlchemy URL or SQLite file path.
        echo: If True, log all SQL statements.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = get_database_url(database)
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to an engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Transactional session scope.

    Usage:
        with session_scope(factory) as session:
            # use session; committed on exit, rolled back on error

    Yields:
        SQLAlchemy Session instance.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """
    Create all tables.

    Note: In production, use Alembic migrations instead.
    """
    from catalog_ingest.db.models import Base

    Base.metadata.create_all(bind=engine)


def run_migrations(database: Path | str | None = None) -> None:
    """
    Run Alembic migrations to the latest revision.

    Args:
        database: Optional SQLAlchemy URL or SQLite file path.
    """
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", get_database_url(database))
    command.upgrade(config, "head")
