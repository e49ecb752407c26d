"""
Pytest configuration and shared fixtures
"""
import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.config import ProviderCredentials, Settings
from app.db import DB, AccountStore, ConnectionPool
from app.main import create_app
from app.models import Provider
from app.sessions import SessionManager

SCHEMA_PATH = Path(__file__).parent.parent / "schema.sql"


def make_credentials(provider: Provider) -> ProviderCredentials:
    return ProviderCredentials(
        client_id=f"{provider.value}-client-id",
        client_secret=f"{provider.value}-client-secret",
        redirect_uri=f"http://localhost:3000/auth/{provider.value}/callback",
    )


def make_settings(db_path: str, **overrides) -> Settings:
    values = {
        "environment": "development",
        "database_path": db_path,
        "db_pool_size": 4,
        "db_pool_timeout": 1.0,
        "providers": {p: make_credentials(p) for p in Provider},
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def temp_db():
    """Temporary sqlite file with the schema applied."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    with DB(db_path) as db:
        db.init_schema(str(SCHEMA_PATH))
    yield db_path
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def pool(temp_db):
    pool = ConnectionPool(temp_db, size=4, timeout=1.0)
    yield pool
    pool.close()


@pytest.fixture
def store(pool):
    return AccountStore(pool)


@pytest.fixture
def session_manager(store):
    return SessionManager(store)


@pytest.fixture
def settings(temp_db):
    return make_settings(temp_db)


@pytest.fixture
def test_app(settings):
    return create_app(settings, install_loop_handler=False)


@pytest.fixture
def client(test_app):
    """Test client with the lifespan running."""
    with TestClient(test_app) as client:
        yield client


@pytest.fixture
def mock_http():
    """Patch httpx.AsyncClient; returns the client object used inside ``async with``."""
    with patch("httpx.AsyncClient") as mock_client:
        http = AsyncMock()
        mock_client.return_value.__aenter__.return_value = http
        mock_client.return_value.__aexit__.return_value = False
        yield http
