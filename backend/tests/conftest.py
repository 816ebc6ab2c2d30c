"""Shared fixtures: an in-memory SQLite database for the approval engine.

The engine runs on sync sessions, so its tests use real tables instead of
mocked query results. Model factories live in ``factories.py``.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.db.base import Base
from app.models.company import Company


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def company(db) -> Company:
    c = Company(name="Acme", country="US", currency="USD")
    db.add(c)
    db.commit()
    return c
