"""Pytest configuration and fixtures for socialbro tests.

Test isolation strategy:
- Each test that touches the database gets a fresh SQLite file under tmp_path
  with the schema created from the ORM models
- Route tests use an app wired to that database, with MockJwtVerifier in
  place of the JWKS verifier
- Outbound HTTP is mocked with respx; nothing leaves the process
"""

import os
from collections.abc import Generator
from pathlib import Path
from uuid import UUID

# Settings are read lazily, but must be in place before the first get_settings()
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_JWKS_URL", "https://auth.test/.well-known/jwks.json")
os.environ.setdefault("AUTH_ISSUER", "test-issuer")
os.environ.setdefault("AUTH_AUDIENCES", "test-audience")
os.environ.setdefault("ENCRYPTION_SECRET", "test-master-secret-for-socialbro")
os.environ["SOCIALBRO_ENV"] = "test"
os.environ["EXTERNAL_RETRY_BASE_DELAY_MS"] = "0"
os.environ["REDIS_URL"] = ""
os.environ["YOUTUBE_API_KEY"] = ""
os.environ["RAPIDAPI_KEY"] = ""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from socialbro.app import add_request_id_middleware, create_app
from socialbro.config import clear_settings_cache
from socialbro.db.models import Base, User
from socialbro.db.session import create_session_factory, get_db
from socialbro.services import credential_resolver
from socialbro.services.rate_limit import RateLimiter, set_rate_limiter
from tests.helpers import create_user
from tests.support.jwt_verifier import MockJwtVerifier


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """A fresh SQLite database per test, schema created from the models."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'socialbro.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(session_factory: sessionmaker[Session]) -> FastAPI:
    """App with auth enabled (MockJwtVerifier) and the test database wired in."""
    app = create_app(token_verifier=MockJwtVerifier(), session_factory=session_factory)
    add_request_id_middleware(app, log_requests=False)

    def override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Test client; entering it runs the lifespan (outbound client, cache)."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def user(db_session: Session) -> User:
    return create_user(db_session, email="alice@example.com", name="Alice")


@pytest.fixture
def user_id(user: User) -> UUID:
    return user.id


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> Generator[None, None, None]:
    """Each test starts with a no-op limiter."""
    set_rate_limiter(RateLimiter(redis_client=None))
    yield
    set_rate_limiter(RateLimiter(redis_client=None))


@pytest.fixture
def store_calls(monkeypatch: pytest.MonkeyPatch) -> dict[str, int]:
    """Count the stored-key reads and decrypts the resolver performs."""
    calls = {"find_credential": 0, "decrypt": 0}

    def counting(name: str):
        original = getattr(credential_resolver, name)

        def wrapper(*args, **kwargs):
            calls[name] += 1
            return original(*args, **kwargs)

        return wrapper

    for name in calls:
        monkeypatch.setattr(credential_resolver, name, counting(name))
    return calls
