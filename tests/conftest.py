"""Pytest configuration and shared fixtures.

Integration tests run against an in-memory SQLite database. Every test gets a
session bound to an outer transaction that is rolled back afterwards, so data
never leaks between tests. Services still open savepoints of their own.
"""

import uuid
from typing import Any, Dict, List, Tuple

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import governance.db.models  # noqa: F401  registers every table on Base
from governance.core.config import get_settings
from governance.db.base import Base
from tests.factories import create_member, create_tree


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Session rolled back at the end of each test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        autoflush=False,
        expire_on_commit=False,
    )
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached; drop the cache so env changes apply per test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class RecordingNotifier:
    """Notifier that keeps every event it receives."""

    def __init__(self):
        self.events: List[Tuple[Any, Dict[str, Any]]] = []

    def notify(self, event, payload):
        self.events.append((event, payload))

    @property
    def names(self) -> List[str]:
        return [e.value for e, _ in self.events]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def tree(db_session):
    """One event: root, two departments, a committee and a team."""
    return create_tree(db_session)


@pytest.fixture
def root_admin(db_session, tree):
    """User holding the admin role on the root workspace."""
    user_id = uuid.uuid4()
    create_member(db_session, workspace=tree.root, user_id=user_id, role="admin")
    return user_id
