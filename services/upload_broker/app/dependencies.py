"""FastAPI dependency injection."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from services.upload_broker.app.config import Settings, get_settings
from services.upload_broker.app.core.orchestrator import UploadOrchestrator
from services.upload_broker.app.core.registry import InMemorySessionStore, SessionRegistry
from shared.utils.s3 import S3Client, StorageClient


def get_storage_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageClient:
    """Get S3 storage client dependency."""
    return S3Client(
        bucket=settings.s3_bucket,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
        access_key=settings.s3_access_key_id,
        secret_key=settings.s3_secret_access_key,
    )


@lru_cache
def get_registry() -> SessionRegistry:
    """Get the process-wide session registry."""
    return SessionRegistry(InMemorySessionStore())


def get_orchestrator(
    registry: Annotated[SessionRegistry, Depends(get_registry)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UploadOrchestrator:
    """Get upload orchestrator dependency."""
    return UploadOrchestrator(registry=registry, storage=storage, settings=settings)


# Type aliases for cleaner function signatures
AppSettings = Annotated[Settings, Depends(get_settings)]
Storage = Annotated[StorageClient, Depends(get_storage_client)]
Orchestrator = Annotated[UploadOrchestrator, Depends(get_orchestrator)]
