import os

os.environ.setdefault("ENV", "test")

import pytest  # noqa: E402

from app.db import DatabaseManager  # noqa: E402

pytest_plugins = [
    "tests.fixtures.llm_fixtures",
    "tests.fixtures.message_fixtures",
    "tests.fixtures.pipeline_fixtures",
]


@pytest.fixture(scope="function")
def db_manager(tmp_path):
    """
    A fresh SQLite file database per test.

    File-backed (not :memory:) so that worker threads used by the pattern
    detector see the same data as the test's own session.
    """
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'analytics.db'}")
    manager.create_all()
    yield manager
    manager.dispose()


@pytest.fixture(scope="function")
def db(db_manager):
    session = db_manager.SessionLocal()
    try:
        yield session
    finally:
        session.close()
