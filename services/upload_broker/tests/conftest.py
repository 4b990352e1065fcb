"""Pytest fixtures for Upload Broker tests."""

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from services.upload_broker.app.config import Settings, get_settings
from services.upload_broker.app.core.orchestrator import UploadOrchestrator
from services.upload_broker.app.core.registry import InMemorySessionStore, SessionRegistry
from services.upload_broker.app.dependencies import (
    get_orchestrator,
    get_registry,
    get_storage_client,
)
from services.upload_broker.app.main import app
from services.upload_broker.tests.fakes import BrokenOrchestrator, FakeStorageClient


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        environment="development",
        s3_bucket="test-bucket",
        s3_region="us-east-1",
        s3_access_key_id="test",
        s3_secret_access_key="test",
        provider_timeout_seconds=2.0,
        part_url_concurrency=4,
    )


@pytest.fixture
def storage() -> FakeStorageClient:
    """Create fake storage provider."""
    return FakeStorageClient()


@pytest.fixture
def registry() -> SessionRegistry:
    """Create empty session registry."""
    return SessionRegistry(InMemorySessionStore())


@pytest.fixture
def orchestrator(registry, storage, test_settings) -> UploadOrchestrator:
    """Create orchestrator over the fake provider."""
    return UploadOrchestrator(registry=registry, storage=storage, settings=test_settings)


@pytest.fixture
async def client(
    registry,
    storage,
    test_settings,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with overridden dependencies."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_storage_client] = lambda: storage

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def failing_client(test_settings) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client whose orchestrator raises unexpected errors.

    App exceptions are not re-raised into the test so the rendered 500
    response can be inspected.
    """
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_orchestrator] = BrokenOrchestrator

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
