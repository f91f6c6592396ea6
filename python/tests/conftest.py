"""Pytest configuration and fixtures for Murmur tests.

Test isolation strategy:
- Every test that touches the database gets its own SQLite file under
  tmp_path, created from the ORM metadata
- App tests override get_db/get_session_factory so routes and background
  persistence use that same database
- Auth tests mint RS256 tokens checked by MockJwtVerifier
"""

import base64
import os
import sys
from collections.abc import Generator
from pathlib import Path

# Make `murmur` and `tests` importable from a source checkout
_python_root = Path(__file__).parent.parent
if str(_python_root) not in sys.path:
    sys.path.insert(0, str(_python_root))

# Settings are read lazily; these defaults make every test environment valid
os.environ.setdefault("MURMUR_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("AUTH_JWKS_URL", "http://localhost/.well-known/jwks.json")
os.environ.setdefault("AUTH_ISSUER", "test-issuer")
os.environ.setdefault("AUTH_AUDIENCES", "test-audience")
os.environ.setdefault(
    "MURMUR_KEY_ENCRYPTION_KEY", base64.b64encode(b"k" * 32).decode("ascii")
)

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from murmur.app import create_app
from murmur.auth.middleware import AuthMiddleware
from murmur.config import clear_settings_cache
from murmur.db.engine import create_db_engine
from murmur.db.models import Base
from murmur.db.session import create_session_factory, get_db, get_session_factory
from murmur.services.crypto import clear_master_key_cache
from tests.support.test_verifier import MockJwtVerifier


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """SQLite engine on a fresh file with the full schema."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'murmur_test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a database session on the per-test database."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _bind_database(app: FastAPI, session_factory: sessionmaker[Session]) -> None:
    def override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory


@pytest.fixture
def client(session_factory: sessionmaker[Session]) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client without authentication.

    Suitable for public endpoints and basic functionality.
    """
    app = create_app(skip_auth_middleware=True)
    _bind_database(app, session_factory)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def authenticated_app(session_factory: sessionmaker[Session]) -> FastAPI:
    """Provide a FastAPI app with auth middleware using the test verifier."""
    app = create_app(skip_auth_middleware=True)
    app.add_middleware(AuthMiddleware, verifier=MockJwtVerifier())
    _bind_database(app, session_factory)
    return app


@pytest.fixture
def auth_client(authenticated_app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client with auth middleware.

    Use auth_headers() to generate valid tokens for requests.
    """
    with TestClient(authenticated_app) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset settings and key caches before each test."""
    clear_settings_cache()
    clear_master_key_cache()
    yield
    clear_settings_cache()
    clear_master_key_cache()
