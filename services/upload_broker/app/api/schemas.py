"""Request and response schemas for the Upload Broker API."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from services.upload_broker.app.core.models import (
    CompletedPart,
    SessionKind,
    SessionState,
    UploadSession,
)

# Blank names, sizes and content types are checked by the orchestrator.


class InitiateUploadRequest(BaseModel):
    """Request for a single-shot upload URL."""

    file_name: str = Field(..., description="Original file name")
    content_type: str = Field(..., description="MIME type of the file")
    owner_id: Optional[str] = Field(None, description="Caller identity, anonymous if omitted")
    file_size: Optional[int] = Field(None, description="File size in bytes, if known")


class InitiateUploadResponse(BaseModel):
    """Signed PUT URL for a simple upload."""

    session_id: str
    upload_url: str
    storage_key: str
    expires_in: int
    expires_at: datetime


class ConfirmRequest(BaseModel):
    """Request to mark a simple upload as completed."""

    session_id: str = Field(..., description="Session to confirm")
    include_download_url: bool = Field(
        True, description="Mint a download URL for the completed object"
    )


class MultipartInitiateRequest(BaseModel):
    """Request to open a multipart upload."""

    file_name: str = Field(..., description="Original file name")
    content_type: str = Field(..., description="MIME type of the file")
    file_size: Optional[int] = Field(None, description="File size in bytes (required)")
    owner_id: Optional[str] = Field(None, description="Caller identity, anonymous if omitted")


class PartUrlSchema(BaseModel):
    part_number: int
    upload_url: str


class MultipartInitiateResponse(BaseModel):
    """Signed URLs for every part of a multipart upload."""

    session_id: str
    storage_key: str
    part_size: int
    part_count: int
    parts: list[PartUrlSchema]
    expires_in: int
    expires_at: datetime


class CompletedPartSchema(BaseModel):
    """One uploaded part and the ETag the storage service returned for it."""

    part_number: int = Field(..., ge=1)
    etag: str = Field(..., min_length=1)

    def to_domain(self) -> CompletedPart:
        return CompletedPart(part_number=self.part_number, etag=self.etag)


class MultipartCompleteRequest(BaseModel):
    """Request to assemble a multipart upload."""

    session_id: str
    parts: list[CompletedPartSchema] = Field(default_factory=list)


class MultipartAbortRequest(BaseModel):
    """Request to abort a multipart upload."""

    session_id: str


class DownloadUrlRequest(BaseModel):
    """Request for a signed download URL."""

    storage_key: str = Field(..., description="Object key to sign")
    expires_in: Optional[int] = Field(None, description="URL lifetime in seconds")


class DownloadUrlResponse(BaseModel):
    storage_key: str
    download_url: str
    expires_in: int
    expires_at: datetime


class SessionResponse(BaseModel):
    """Full view of an upload session."""

    session_id: str
    storage_key: str
    owner_id: str
    file_name: str
    content_type: str
    file_size: Optional[int] = None
    kind: SessionKind
    state: SessionState
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None
    aborted_at: Optional[datetime] = None
    download_url: Optional[str] = None
    location: Optional[str] = None
    storage_upload_id: Optional[str] = None
    part_size: Optional[int] = None
    part_count: Optional[int] = None
    completed_parts: list[CompletedPartSchema] = Field(default_factory=list)

    @classmethod
    def from_session(cls, session: UploadSession) -> "SessionResponse":
        """Build the response from a domain session."""
        return cls(
            session_id=session.session_id,
            storage_key=session.storage_key,
            owner_id=session.owner_id,
            file_name=session.file_name,
            content_type=session.content_type,
            file_size=session.file_size,
            kind=session.kind,
            state=session.state,
            created_at=session.created_at,
            expires_at=session.expires_at,
            completed_at=session.completed_at,
            aborted_at=session.aborted_at,
            download_url=session.download_url,
            location=session.location,
            storage_upload_id=session.storage_upload_id,
            part_size=session.part_size,
            part_count=session.part_count,
            completed_parts=[
                CompletedPartSchema(part_number=p.part_number, etag=p.etag)
                for p in session.completed_parts
            ],
        )


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int


class DeleteResponse(BaseModel):
    session_id: str
    deleted: bool = True


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy"] = "healthy"
    service: str
    version: str
    environment: str
    storage_configured: bool
    timestamp: datetime
