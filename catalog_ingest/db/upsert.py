"""Dialect helpers for unique-constraint upserts and row claiming."""

from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_name(session: Session) -> str:
    """Name of the dialect the session is bound to."""
    return session.get_bind().dialect.name


def dialect_insert(session: Session, table: Table) -> Any:
    """
    Build an INSERT that supports on_conflict_do_nothing / on_conflict_do_update.

    Raises:
        NotImplementedError: If the store offers no conflict-aware insert.
    """
    name = dialect_name(session)
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upsert is not supported on dialect '{name}'")


def supports_skip_locked(session: Session) -> bool:
    """True when the store can claim rows with FOR UPDATE SKIP LOCKED."""
    return dialect_name(session) == "postgresql"
