"""Database engine, session factory and FastAPI dependency."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator, Optional

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

SessionFactory = Callable[[], ContextManager[Session]]


class DatabaseManager:
    """Owns the engine and hands out short-lived sessions."""

    def __init__(self, database_url: Optional[str] = None) -> None:
        self._database_url = database_url
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def SessionLocal(self) -> sessionmaker:
        if self._sessionmaker is None:
            self._sessionmaker = sessionmaker(
                autocommit=False, autoflush=False, bind=self.engine
            )
        return self._sessionmaker

    def _create_engine(self) -> Engine:
        settings = get_settings()
        url = self._database_url or settings.database_url
        if url.startswith("sqlite"):
            return create_engine(url, connect_args={"check_same_thread": False})
        return create_engine(
            url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            connect_args={"application_name": settings.db_app_name},
        )

    @contextmanager
    def db_session(self) -> Generator[Session, None, None]:
        """
        Yield a session that is committed on success, rolled back on error and
        always closed. Keep the block short: never await an external service
        while holding it.
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def create_all(self) -> None:
        """Create every table on the bound engine (tests and local bootstrap)."""
        import app.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessionmaker = None


db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    db = db_manager.SessionLocal()
    try:
        yield db
    finally:
        db.close()
