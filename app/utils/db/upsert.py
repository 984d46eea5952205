"""Dialect-aware INSERT ... ON CONFLICT helpers."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_for(db: Session, table: Any):
    """
    Return a dialect-specific insert() construct supporting on_conflict_do_*.

    PostgreSQL in production, SQLite in tests; both resolve the conflict in a
    single statement, which is what makes re-delivery safe without locks.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upsert is not supported for dialect {dialect!r}")
