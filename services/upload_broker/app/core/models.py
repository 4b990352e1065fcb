"""Upload session domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class SessionKind(str, Enum):
    """Transfer strategy, fixed at creation."""

    SIMPLE = "simple"
    MULTIPART = "multipart"


class SessionState(str, Enum):
    """Upload session lifecycle status."""

    PENDING = "pending"  # Simple upload URL issued, not yet confirmed
    MULTIPART_INITIATED = "multipart_initiated"  # Multipart handle open, part URLs issued
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class CompletedPart:
    """One uploaded part as reported by the client."""

    part_number: int
    etag: str


@dataclass
class UploadSession:
    """One tracked file transfer attempt."""

    session_id: str
    storage_key: str
    owner_id: str
    file_name: str
    content_type: str
    kind: SessionKind
    state: SessionState
    created_at: datetime
    expires_at: datetime
    file_size: Optional[int] = None
    completed_at: Optional[datetime] = None
    aborted_at: Optional[datetime] = None
    download_url: Optional[str] = None
    location: Optional[str] = None

    # Multipart only
    storage_upload_id: Optional[str] = None
    part_size: Optional[int] = None
    part_count: Optional[int] = None
    completed_parts: list[CompletedPart] = field(default_factory=list)

    @property
    def is_multipart(self) -> bool:
        return self.kind == SessionKind.MULTIPART

    def mark_completed(
        self,
        at: datetime,
        download_url: str | None = None,
        location: str | None = None,
        parts: list[CompletedPart] | None = None,
    ) -> None:
        """Record a successful completion. Timestamps are only written once."""
        self.state = SessionState.COMPLETED
        if self.completed_at is None:
            self.completed_at = at
        if download_url is not None:
            self.download_url = download_url
        if location is not None:
            self.location = location
        if parts is not None:
            self.completed_parts = list(parts)

    def mark_aborted(self, at: datetime) -> None:
        self.state = SessionState.ABORTED
        if self.aborted_at is None:
            self.aborted_at = at
