"""Shared fixtures: in-memory database, store layers and an API client."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mcp_social.config import Settings
from mcp_social.database import Base
from mcp_social.dispatcher import Dispatcher
from mcp_social.feed import SocialGraph
from mcp_social.identity import IdentityResolver
from mcp_social.sessions import MemorySessionStore
from mcp_social.store import SocialStore


@pytest.fixture
def test_settings():
    """Settings with cheap hashing for tests."""
    return Settings(database_url="sqlite://", bcrypt_rounds=4)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Create in-memory database session for testing."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db_session):
    return SocialStore(db_session)


@pytest.fixture
def graph(store):
    return SocialGraph(store)


@pytest.fixture
def identity_sessions():
    return MemorySessionStore()


@pytest.fixture
def resolver(store, identity_sessions):
    return IdentityResolver(store, identity_sessions, bcrypt_rounds=4)


@pytest.fixture
def dispatcher(store, identity_sessions, test_settings):
    return Dispatcher(store, identity_sessions, test_settings)


@pytest.fixture
def api_client(session_factory, test_settings):
    """FastAPI TestClient wired to the in-memory database."""
    from fastapi import Depends
    from fastapi.testclient import TestClient

    from mcp_social.api import app, get_db, get_dispatcher, get_identity_sessions
    from mcp_social.channels import ConnectionRegistry

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def override_get_dispatcher(
        db=Depends(get_db),
        sessions=Depends(get_identity_sessions)
    ):
        return Dispatcher(SocialStore(db), sessions, test_settings)

    app.state.identity_sessions = MemorySessionStore()
    app.state.connections = ConnectionRegistry()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = override_get_dispatcher

    yield TestClient(app)

    app.dependency_overrides.clear()
