"""API routes for the Upload Broker service."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query, status

from services.upload_broker.app.api.schemas import (
    ConfirmRequest,
    DeleteResponse,
    DownloadUrlRequest,
    DownloadUrlResponse,
    HealthResponse,
    InitiateUploadRequest,
    InitiateUploadResponse,
    MultipartAbortRequest,
    MultipartCompleteRequest,
    MultipartInitiateRequest,
    MultipartInitiateResponse,
    PartUrlSchema,
    SessionListResponse,
    SessionResponse,
)
from services.upload_broker.app.core.models import SessionState
from services.upload_broker.app.dependencies import AppSettings, Orchestrator, Storage
from shared.schemas.api_responses import APIResponse
from shared.utils.logging import get_correlation_id, get_logger

logger = get_logger(__name__)

router = APIRouter()


def _ok(data) -> APIResponse:
    return APIResponse(success=True, data=data, correlation_id=get_correlation_id() or None)


@router.get("/health", response_model=APIResponse[HealthResponse])
async def health_check(settings: AppSettings, storage: Storage) -> APIResponse:
    """Liveness check. Reports storage configuration without failing on it."""
    storage_configured = storage.is_configured()
    if not storage_configured:
        logger.warning("health_check_storage_not_configured", bucket=settings.s3_bucket or None)

    return _ok(
        HealthResponse(
            service=settings.service_name,
            version=settings.service_version,
            environment=settings.environment,
            storage_configured=storage_configured,
            timestamp=datetime.now(timezone.utc),
        )
    )


@router.post(
    "/presigned-url",
    response_model=APIResponse[InitiateUploadResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_presigned_upload(
    request: InitiateUploadRequest,
    orchestrator: Orchestrator,
) -> APIResponse:
    """Start a single-shot upload and return its signed PUT URL."""
    ticket = await orchestrator.initiate_simple(
        file_name=request.file_name,
        content_type=request.content_type,
        owner_id=request.owner_id,
        file_size=request.file_size,
    )
    return _ok(
        InitiateUploadResponse(
            session_id=ticket.session.session_id,
            upload_url=ticket.upload_url,
            storage_key=ticket.session.storage_key,
            expires_in=ticket.expires_in,
            expires_at=ticket.session.expires_at,
        )
    )


@router.post("/confirm", response_model=APIResponse[SessionResponse])
async def confirm_upload(
    request: ConfirmRequest,
    orchestrator: Orchestrator,
) -> APIResponse:
    """Mark a simple upload as completed."""
    session = await orchestrator.confirm(
        request.session_id,
        include_download_url=request.include_download_url,
    )
    return _ok(SessionResponse.from_session(session))


@router.post("/download-url", response_model=APIResponse[DownloadUrlResponse])
async def create_download_url(
    request: DownloadUrlRequest,
    orchestrator: Orchestrator,
) -> APIResponse:
    """Sign a download URL for an object key."""
    link = await orchestrator.get_download_url(request.storage_key, request.expires_in)
    return _ok(
        DownloadUrlResponse(
            storage_key=link.storage_key,
            download_url=link.download_url,
            expires_in=link.expires_in,
            expires_at=link.expires_at,
        )
    )


@router.post(
    "/multipart/initiate",
    response_model=APIResponse[MultipartInitiateResponse],
    status_code=status.HTTP_201_CREATED,
)
async def initiate_multipart_upload(
    request: MultipartInitiateRequest,
    orchestrator: Orchestrator,
) -> APIResponse:
    """Open a multipart upload and return one signed URL per part."""
    ticket = await orchestrator.initiate_multipart(
        file_name=request.file_name,
        content_type=request.content_type,
        file_size=request.file_size,
        owner_id=request.owner_id,
    )
    session = ticket.session
    return _ok(
        MultipartInitiateResponse(
            session_id=session.session_id,
            storage_key=session.storage_key,
            part_size=session.part_size,
            part_count=session.part_count,
            parts=[
                PartUrlSchema(part_number=p.part_number, upload_url=p.upload_url)
                for p in ticket.parts
            ],
            expires_in=ticket.expires_in,
            expires_at=session.expires_at,
        )
    )


@router.post("/multipart/complete", response_model=APIResponse[SessionResponse])
async def complete_multipart_upload(
    request: MultipartCompleteRequest,
    orchestrator: Orchestrator,
) -> APIResponse:
    """Assemble a multipart upload from its uploaded parts."""
    session = await orchestrator.complete_multipart(
        request.session_id,
        [part.to_domain() for part in request.parts],
    )
    return _ok(SessionResponse.from_session(session))


@router.post("/multipart/abort", response_model=APIResponse[SessionResponse])
async def abort_multipart_upload(
    request: MultipartAbortRequest,
    orchestrator: Orchestrator,
) -> APIResponse:
    """Abort a multipart upload and release its parts."""
    session = await orchestrator.abort_multipart(request.session_id)
    return _ok(SessionResponse.from_session(session))


@router.get("/", response_model=APIResponse[SessionListResponse])
async def list_sessions(
    orchestrator: Orchestrator,
    owner_id: Optional[str] = Query(None, description="Filter by owner"),
    state: Optional[SessionState] = Query(None, description="Filter by state"),
) -> APIResponse:
    """List upload sessions ordered by creation time."""
    sessions = await orchestrator.list_sessions(owner_id=owner_id, state=state)
    logger.debug(
        "upload_sessions_listed",
        owner_id=owner_id,
        state=state.value if state else None,
        total=len(sessions),
    )
    return _ok(
        SessionListResponse(
            sessions=[SessionResponse.from_session(s) for s in sessions],
            total=len(sessions),
        )
    )


@router.get("/{session_id}", response_model=APIResponse[SessionResponse])
async def get_session(session_id: str, orchestrator: Orchestrator) -> APIResponse:
    """Get an upload session by id."""
    session = await orchestrator.get(session_id)
    return _ok(SessionResponse.from_session(session))


@router.delete("/{session_id}", response_model=APIResponse[DeleteResponse])
async def delete_session(session_id: str, orchestrator: Orchestrator) -> APIResponse:
    """Delete an upload session, and its object if it was completed."""
    await orchestrator.delete(session_id)
    return _ok(DeleteResponse(session_id=session_id))
