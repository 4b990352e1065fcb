"""Upload session orchestration.

Drives every upload session through its lifecycle: chooses the transfer
strategy, mints signed URLs through the storage provider, and applies
state transitions to the session registry. File bytes never pass through
here, and client-reported completion is trusted as-is.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, TypeVar
from uuid import uuid4

from services.upload_broker.app.config import Settings
from services.upload_broker.app.core.errors import (
    CapacityError,
    ConfigurationError,
    ConflictError,
    UpstreamError,
    ValidationError,
)
from services.upload_broker.app.core.keys import ANONYMOUS_OWNER, make_key
from services.upload_broker.app.core.models import (
    CompletedPart,
    SessionKind,
    SessionState,
    UploadSession,
)
from services.upload_broker.app.core.part_sizing import (
    MAX_MULTIPART_OBJECT_SIZE,
    MIN_PART_SIZE,
    PartPlan,
    plan,
)
from services.upload_broker.app.core.registry import SessionRegistry
from services.upload_broker.app.core.state_machine import StateMachine
from services.upload_broker.app.core.validation import validate_initiation
from shared.utils.logging import get_logger
from shared.utils.metrics import create_counter
from shared.utils.s3 import StorageClient

logger = get_logger(__name__)

T = TypeVar("T")

# Metrics
SESSIONS_INITIATED = create_counter(
    "upload_sessions_initiated_total",
    "Total upload sessions initiated",
    ["kind"],
)
STATE_TRANSITIONS = create_counter(
    "upload_state_transitions_total",
    "Total upload session state transitions",
    ["from_state", "to_state"],
)
SESSIONS_DELETED = create_counter(
    "upload_sessions_deleted_total",
    "Total upload sessions deleted",
    ["state"],
)
STORAGE_FAILURES = create_counter(
    "upload_storage_failures_total",
    "Total failed storage provider calls",
    ["operation"],
)


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@dataclass
class SimpleUploadTicket:
    """A registered simple session and the URL to PUT the file to."""

    session: UploadSession
    upload_url: str
    expires_in: int


@dataclass
class PartUrl:
    part_number: int
    upload_url: str


@dataclass
class MultipartUploadTicket:
    """A registered multipart session and one signed URL per part."""

    session: UploadSession
    parts: list[PartUrl]
    expires_in: int


@dataclass
class DownloadLink:
    storage_key: str
    download_url: str
    expires_in: int
    expires_at: datetime


class UploadOrchestrator:
    """State-machine driver for upload sessions.

    Concurrent operations on different sessions are independent. Concurrent
    mutations of the same session are not coordinated: the last save wins.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        storage: StorageClient,
        settings: Settings,
    ):
        """Initialize orchestrator.

        Args:
            registry: Session registry
            storage: Storage capability provider
            settings: Service settings (limits, TTLs, timeouts)
        """
        self.registry = registry
        self.storage = storage
        self.settings = settings

    # ------------------------------------------------------------------
    # Provider plumbing
    # ------------------------------------------------------------------

    def _require_storage(self) -> None:
        if not self.storage.is_configured():
            raise ConfigurationError(
                "Storage provider is not configured",
                details="Set UPLOAD_S3_BUCKET, UPLOAD_S3_REGION and S3 credentials",
            )

    async def _call_storage(self, operation: str, call: Awaitable[T]) -> T:
        """Await a provider call under the configured timeout.

        Raises:
            UpstreamError: On timeout or any provider failure
        """
        timeout = self.settings.provider_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            STORAGE_FAILURES.labels(operation=operation).inc()
            logger.error("storage_call_timed_out", operation=operation, timeout=timeout)
            raise UpstreamError(operation, details=f"Timed out after {timeout}s") from e
        except Exception as e:
            STORAGE_FAILURES.labels(operation=operation).inc()
            logger.error(
                "storage_call_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise UpstreamError(operation, details=str(e)) from e

    def _plan(self, file_size: int) -> PartPlan:
        try:
            return plan(file_size, preferred_part_size=self.settings.multipart_preferred_part_size)
        except ValueError as e:
            raise CapacityError("File too large", details=str(e)) from e

    def _record_transition(self, session: UploadSession, previous: SessionState) -> None:
        STATE_TRANSITIONS.labels(from_state=previous.value, to_state=session.state.value).inc()
        logger.info(
            "upload_state_changed",
            session_id=session.session_id,
            from_state=previous.value,
            to_state=session.state.value,
        )

    def _new_session(
        self,
        kind: SessionKind,
        storage_key: str,
        file_name: str,
        content_type: str,
        owner_id: str | None,
        file_size: int | None,
        expires_in: int,
    ) -> UploadSession:
        now = utc_now()
        return UploadSession(
            session_id=str(uuid4()),
            storage_key=storage_key,
            owner_id=owner_id or ANONYMOUS_OWNER,
            file_name=file_name,
            content_type=content_type,
            kind=kind,
            state=StateMachine.initial_state(kind),
            created_at=now,
            expires_at=now + timedelta(seconds=expires_in),
            file_size=file_size,
        )

    # ------------------------------------------------------------------
    # Simple uploads
    # ------------------------------------------------------------------

    async def initiate_simple(
        self,
        file_name: str,
        content_type: str,
        owner_id: str | None = None,
        file_size: int | None = None,
    ) -> SimpleUploadTicket:
        """Register a single-shot upload and sign its PUT URL.

        Raises:
            ValidationError: Missing fields or disallowed content type
            CapacityError: File exceeds the size ceiling
            ConflictError: Known size requires a multipart upload
            ConfigurationError: Storage provider is not configured
            UpstreamError: Signing failed
        """
        validate_initiation(
            file_name,
            content_type,
            file_size,
            self.settings.allowed_file_types,
            self.settings.max_file_size_bytes,
        )

        if file_size is not None and self._plan(file_size).use_multipart:
            raise ConflictError(
                "File requires a multipart upload",
                details={"file_size": file_size},
            )

        self._require_storage()

        storage_key = make_key(file_name, owner_id, prefix=self.settings.upload_path_prefix)
        expires_in = self.settings.presigned_url_expiry_seconds
        signed = await self._call_storage(
            "sign_upload",
            self.storage.generate_presigned_upload_url(storage_key, content_type, expires_in),
        )

        session = self._new_session(
            SessionKind.SIMPLE,
            storage_key,
            file_name,
            content_type,
            owner_id,
            file_size,
            expires_in,
        )
        await self.registry.add(session)

        SESSIONS_INITIATED.labels(kind=SessionKind.SIMPLE.value).inc()
        logger.info(
            "upload_session_created",
            session_id=session.session_id,
            kind=session.kind.value,
            owner_id=session.owner_id,
            storage_key=storage_key,
        )

        return SimpleUploadTicket(
            session=session,
            upload_url=signed["presigned_url"],
            expires_in=expires_in,
        )

    async def confirm(
        self,
        session_id: str,
        include_download_url: bool = True,
    ) -> UploadSession:
        """Mark a simple upload as completed.

        The download URL is minted before the state changes, so a signing
        failure leaves the session pending.

        Raises:
            NotFoundError: Unknown session
            ConflictError: Multipart session or session not pending
            UpstreamError: Download URL signing failed
        """
        session = await self.registry.get(session_id)

        if session.is_multipart:
            raise ConflictError(
                "Multipart sessions are finished with multipart completion",
                details={"session_id": session_id, "kind": session.kind.value},
            )
        StateMachine.validate_transition(session.state, SessionState.COMPLETED)

        download_url = None
        if include_download_url:
            self._require_storage()
            signed = await self._call_storage(
                "sign_download",
                self.storage.generate_presigned_download_url(
                    session.storage_key,
                    self.settings.download_url_expiry_seconds,
                ),
            )
            download_url = signed["presigned_url"]

        previous = session.state
        session.mark_completed(utc_now(), download_url=download_url)
        await self.registry.save(session)
        self._record_transition(session, previous)

        return session

    # ------------------------------------------------------------------
    # Multipart uploads
    # ------------------------------------------------------------------

    async def _sign_parts(
        self,
        storage_key: str,
        upload_id: str,
        part_count: int,
        expires_in: int,
    ) -> list[PartUrl]:
        """Sign one URL per part, bounded by ``part_url_concurrency``.

        Results are positional: index ``i`` holds part ``i + 1``. Every
        signing call settles before this returns or raises, so a failure
        never leaves siblings running against the upload handle.

        Raises:
            UpstreamError: The lowest-numbered part that failed to sign
        """
        semaphore = asyncio.Semaphore(self.settings.part_url_concurrency)

        async def sign(part_number: int) -> PartUrl:
            async with semaphore:
                signed = await self._call_storage(
                    "sign_part",
                    self.storage.generate_presigned_part_url(
                        storage_key, upload_id, part_number, expires_in
                    ),
                )
            return PartUrl(part_number=part_number, upload_url=signed["presigned_url"])

        results = await asyncio.gather(
            *(sign(n) for n in range(1, part_count + 1)),
            return_exceptions=True,
        )

        failed = [
            (part_number, result)
            for part_number, result in enumerate(results, start=1)
            if isinstance(result, BaseException)
        ]
        if failed:
            logger.warning(
                "part_signing_failed",
                storage_key=storage_key,
                upload_id=upload_id,
                failed_parts=[part_number for part_number, _ in failed],
                part_count=part_count,
            )
            raise failed[0][1]

        return list(results)

    async def _release_multipart(self, storage_key: str, upload_id: str) -> None:
        """Best-effort abort of a multipart handle that will not be registered."""
        try:
            await self._call_storage(
                "abort_multipart",
                self.storage.abort_multipart_upload(storage_key, upload_id),
            )
        except UpstreamError as e:
            logger.warning(
                "multipart_release_failed",
                storage_key=storage_key,
                upload_id=upload_id,
                error=e.details,
            )

    async def initiate_multipart(
        self,
        file_name: str,
        content_type: str,
        file_size: int | None,
        owner_id: str | None = None,
    ) -> MultipartUploadTicket:
        """Open a multipart upload and sign a URL for every part.

        Raises:
            ValidationError: Missing fields, missing size or disallowed type
            CapacityError: File exceeds the size ceiling or the multipart maximum
            ConflictError: File is too small for a multipart upload
            ConfigurationError: Storage provider is not configured
            UpstreamError: Opening the upload or signing a part failed
        """
        if file_size is None:
            raise ValidationError("file_size is required for multipart uploads")

        validate_initiation(
            file_name,
            content_type,
            file_size,
            self.settings.allowed_file_types,
            self.settings.max_file_size_bytes,
        )

        if file_size > MAX_MULTIPART_OBJECT_SIZE:
            raise CapacityError(
                "File too large",
                details=f"Multipart uploads are limited to {MAX_MULTIPART_OBJECT_SIZE} bytes",
            )

        part_plan = self._plan(file_size)
        if not part_plan.use_multipart:
            raise ConflictError(
                "File is too small for a multipart upload",
                details={
                    "file_size": file_size,
                    "min_part_size": MIN_PART_SIZE,
                    "part_count": part_plan.part_count,
                },
            )

        self._require_storage()

        storage_key = make_key(file_name, owner_id, prefix=self.settings.upload_path_prefix)
        expires_in = self.settings.presigned_url_expiry_seconds

        upload_id = await self._call_storage(
            "begin_multipart",
            self.storage.create_multipart_upload(storage_key, content_type),
        )

        try:
            parts = await self._sign_parts(
                storage_key, upload_id, part_plan.part_count, expires_in
            )
        except UpstreamError:
            await self._release_multipart(storage_key, upload_id)
            raise

        session = self._new_session(
            SessionKind.MULTIPART,
            storage_key,
            file_name,
            content_type,
            owner_id,
            file_size,
            expires_in,
        )
        session.storage_upload_id = upload_id
        session.part_size = part_plan.part_size
        session.part_count = part_plan.part_count
        await self.registry.add(session)

        SESSIONS_INITIATED.labels(kind=SessionKind.MULTIPART.value).inc()
        logger.info(
            "upload_session_created",
            session_id=session.session_id,
            kind=session.kind.value,
            owner_id=session.owner_id,
            storage_key=storage_key,
            part_size=part_plan.part_size,
            part_count=part_plan.part_count,
        )

        return MultipartUploadTicket(session=session, parts=parts, expires_in=expires_in)

    def _require_multipart(self, session: UploadSession) -> None:
        if not session.is_multipart:
            raise ConflictError(
                "Session is not a multipart upload",
                details={"session_id": session.session_id, "kind": session.kind.value},
            )

    async def complete_multipart(
        self,
        session_id: str,
        parts: list[CompletedPart],
    ) -> UploadSession:
        """Assemble a multipart upload from the client-reported parts.

        Parts are sorted by part number before they are forwarded, whatever
        order the client sent them in.

        Raises:
            NotFoundError: Unknown session
            ConflictError: Simple session, wrong state, or wrong part count
            ValidationError: Part numbers are not exactly 1..part_count
            UpstreamError: Provider completion failed
        """
        session = await self.registry.get(session_id)
        self._require_multipart(session)
        StateMachine.validate_transition(session.state, SessionState.COMPLETED)

        if len(parts) != session.part_count:
            raise ConflictError(
                f"Expected {session.part_count} parts, got {len(parts)}",
                details={"expected": session.part_count, "received": len(parts)},
            )

        ordered = sorted(parts, key=lambda p: p.part_number)
        if [p.part_number for p in ordered] != list(range(1, session.part_count + 1)):
            raise ValidationError(
                f"Part numbers must be 1..{session.part_count} with no gaps or duplicates",
                details={"part_numbers": [p.part_number for p in parts]},
            )

        self._require_storage()
        result: dict[str, Any] = await self._call_storage(
            "complete_multipart",
            self.storage.complete_multipart_upload(
                session.storage_key,
                session.storage_upload_id,
                [{"part_number": p.part_number, "etag": p.etag} for p in ordered],
            ),
        )

        previous = session.state
        session.mark_completed(utc_now(), location=result.get("location"), parts=ordered)
        await self.registry.save(session)
        self._record_transition(session, previous)

        return session

    async def abort_multipart(self, session_id: str) -> UploadSession:
        """Release a multipart upload at the provider.

        Raises:
            NotFoundError: Unknown session
            ConflictError: Simple session or session not in progress
            UpstreamError: Provider abort failed
        """
        session = await self.registry.get(session_id)
        self._require_multipart(session)
        StateMachine.validate_transition(session.state, SessionState.ABORTED)

        self._require_storage()
        await self._call_storage(
            "abort_multipart",
            self.storage.abort_multipart_upload(session.storage_key, session.storage_upload_id),
        )

        previous = session.state
        session.mark_aborted(utc_now())
        await self.registry.save(session)
        self._record_transition(session, previous)

        return session

    # ------------------------------------------------------------------
    # Queries and removal
    # ------------------------------------------------------------------

    async def get(self, session_id: str) -> UploadSession:
        return await self.registry.get(session_id)

    async def list_sessions(
        self,
        owner_id: str | None = None,
        state: SessionState | None = None,
    ) -> list[UploadSession]:
        return await self.registry.list(owner_id=owner_id, state=state)

    async def delete(self, session_id: str) -> UploadSession:
        """Remove a session, deleting its object first if it was completed.

        Raises:
            NotFoundError: Unknown session
            ConflictError: Multipart upload still in progress
            UpstreamError: Object deletion failed (the session is kept)
        """
        session = await self.registry.get(session_id)

        if not StateMachine.can_delete(session.state):
            raise ConflictError(
                "Abort the multipart upload before deleting it",
                details={"session_id": session_id, "state": session.state.value},
            )

        if session.state == SessionState.COMPLETED:
            self._require_storage()
            await self._call_storage(
                "delete_object",
                self.storage.delete_object(session.storage_key),
            )

        await self.registry.remove(session_id)

        SESSIONS_DELETED.labels(state=session.state.value).inc()
        logger.info(
            "upload_session_deleted",
            session_id=session_id,
            state=session.state.value,
            storage_key=session.storage_key,
        )
        return session

    async def get_download_url(
        self,
        storage_key: str,
        expires_in: int | None = None,
    ) -> DownloadLink:
        """Sign a download URL for an arbitrary object key.

        Raises:
            ValidationError: Missing key or non-positive TTL
            UpstreamError: Signing failed
        """
        if not storage_key or not storage_key.strip():
            raise ValidationError("storage_key is required")

        ttl = self.settings.download_url_expiry_seconds if expires_in is None else expires_in
        if ttl <= 0:
            raise ValidationError("expires_in must be positive", details={"expires_in": ttl})

        self._require_storage()
        signed = await self._call_storage(
            "sign_download",
            self.storage.generate_presigned_download_url(storage_key, ttl),
        )

        return DownloadLink(
            storage_key=storage_key,
            download_url=signed["presigned_url"],
            expires_in=ttl,
            expires_at=utc_now() + timedelta(seconds=ttl),
        )
