"""Shared fixtures for API tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.config import Settings, get_settings
from app.main import app
from app.services.store import MemoryStore, get_store

ADMIN_TOKEN = "s3cret"


@pytest.fixture
def settings() -> Settings:
    """Settings for an in-memory store with a known admin token."""
    return Settings(
        store_backend="memory",
        admin_token=ADMIN_TOKEN,
        merge_timeout_seconds=None,
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
async def client(settings, store):
    """HTTP client bound to the app with the store and settings overridden."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
