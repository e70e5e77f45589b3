"""Test configuration and fixtures."""

import os

# Settings are read at import time; point them at throwaway values first.
os.environ.setdefault("DATABASE_URL", "sqlite:///./.pytest-assetflow.db")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")

import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from assetflow.locking import KeyedLock
from assetflow.metadata import Base
from assetflow.orchestration import OrchestrationFacade


@pytest.fixture
def test_engine():
    """In-memory engine shared by every session opened in a test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(bind=test_engine)


@pytest.fixture
def test_db(session_factory):
    """Create test database."""
    session = session_factory()

    yield session

    session.close()


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def other_user_id():
    return uuid.uuid4()


@pytest.fixture
def facade(test_db: Session):
    return OrchestrationFacade(test_db, locks=KeyedLock())


@pytest.fixture
def make_asset(facade):
    """Create an active asset for a user; extra attributes pass through."""

    def _make(owner_id, **attrs):
        attrs.setdefault("asset_type", "image")
        attrs.setdefault("file_url", f"https://cdn.example.com/{uuid.uuid4()}.png")
        return facade.create_asset(owner_id, attrs)

    return _make


@pytest.fixture
def client(test_db: Session):
    """API client bound to the test session."""
    from fastapi.testclient import TestClient

    from assetflow.api import app
    from assetflow.database import get_db
    from assetflow.ratelimit import limiter

    def _get_test_db():
        yield test_db

    app.dependency_overrides[get_db] = _get_test_db
    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user id."""
    from assetflow.auth.jwt import issue_identity_token

    def _headers(owner_id):
        return {"Authorization": f"Bearer {issue_identity_token(owner_id)}"}

    return _headers
