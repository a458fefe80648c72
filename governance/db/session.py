"""Session factory for hosts that do not manage their own engine."""

from functools import lru_cache
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from governance.core.config import get_settings


def create_session_factory(database_url: Optional[str] = None, **engine_kwargs) -> sessionmaker:
    """Build a ``sessionmaker`` bound to ``database_url`` (defaults to settings)."""
    engine = create_engine(database_url or get_settings().database_url, **engine_kwargs)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@lru_cache
def default_session_factory(database_url: str) -> sessionmaker:
    """One engine and factory per URL, shared by every ``get_db`` call."""
    return create_session_factory(database_url)


def get_db(session_factory: Optional[sessionmaker] = None) -> Generator:
    """Yield a session and always close it."""
    factory = session_factory or default_session_factory(get_settings().database_url)
    db = factory()
    try:
        yield db
    finally:
        db.close()
