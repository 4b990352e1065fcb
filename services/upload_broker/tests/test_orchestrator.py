"""Tests for the upload session orchestrator."""

import asyncio

import pytest

from services.upload_broker.app.core.errors import (
    CapacityError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from services.upload_broker.app.core.models import (
    CompletedPart,
    SessionKind,
    SessionState,
)
from services.upload_broker.app.core.part_sizing import MAX_MULTIPART_OBJECT_SIZE, MIB
from services.upload_broker.app.core.state_machine import InvalidTransitionError


def parts_for(count: int) -> list[CompletedPart]:
    return [CompletedPart(part_number=n, etag=f'"etag-{n}"') for n in range(1, count + 1)]


class TestInitiateSimple:
    """Tests for single-shot upload initiation."""

    @pytest.mark.asyncio
    async def test_creates_pending_session(self, orchestrator, storage, registry):
        """Test initiation registers a pending session and signs a PUT URL."""
        ticket = await orchestrator.initiate_simple(
            "photo.png", "image/png", owner_id="user-1", file_size=1024
        )

        session = ticket.session
        assert session.state == SessionState.PENDING
        assert session.kind == SessionKind.SIMPLE
        assert session.owner_id == "user-1"
        assert session.storage_key.startswith("uploads/user-1/")
        assert session.storage_key.endswith("-photo.png")
        assert ticket.upload_url.endswith("?op=put")
        assert ticket.expires_in == 3600
        assert session.expires_at > session.created_at

        stored = await registry.get(session.session_id)
        assert stored.state == SessionState.PENDING

        [(key, content_type, expires_in)] = storage.calls_to("generate_presigned_upload_url")
        assert key == session.storage_key
        assert content_type == "image/png"

    @pytest.mark.asyncio
    async def test_anonymous_owner(self, orchestrator):
        ticket = await orchestrator.initiate_simple("a.pdf", "application/pdf")
        assert ticket.session.owner_id == "anonymous"
        assert ticket.session.storage_key.startswith("uploads/anonymous/")

    @pytest.mark.asyncio
    async def test_size_is_optional(self, orchestrator):
        ticket = await orchestrator.initiate_simple("a.pdf", "application/pdf")
        assert ticket.session.file_size is None

    @pytest.mark.asyncio
    async def test_rejects_file_that_needs_multipart(self, orchestrator, registry):
        """Test a known size above one part is pointed at multipart."""
        with pytest.raises(ConflictError):
            await orchestrator.initiate_simple("big.mp4", "video/mp4", file_size=120 * MIB)

        assert await registry.list() == []

    @pytest.mark.asyncio
    async def test_validation_errors_register_nothing(self, orchestrator, storage, registry):
        with pytest.raises(ValidationError):
            await orchestrator.initiate_simple("", "image/png")
        with pytest.raises(ValidationError):
            await orchestrator.initiate_simple("a.exe", "application/x-msdownload")

        assert storage.calls == []
        assert await registry.list() == []

    @pytest.mark.asyncio
    async def test_unconfigured_storage(self, orchestrator, storage):
        storage.configured = False

        with pytest.raises(ConfigurationError) as exc_info:
            await orchestrator.initiate_simple("a.pdf", "application/pdf")

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_provider_failure_is_upstream_error(self, orchestrator, storage, registry):
        """Test signing failures surface as UpstreamError with the raw cause kept."""
        storage.fail_on.add("generate_presigned_upload_url")

        with pytest.raises(UpstreamError) as exc_info:
            await orchestrator.initiate_simple("a.pdf", "application/pdf")

        assert exc_info.value.status_code == 502
        assert "generate_presigned_upload_url failed" in exc_info.value.details
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert await registry.list() == []

    @pytest.mark.asyncio
    async def test_provider_timeout_is_upstream_error(self, orchestrator, storage, test_settings):
        """Test a hung provider call times out as UpstreamError."""
        test_settings.provider_timeout_seconds = 0.01

        async def hang(*args, **kwargs):
            await asyncio.sleep(1)

        storage.generate_presigned_upload_url = hang

        with pytest.raises(UpstreamError) as exc_info:
            await orchestrator.initiate_simple("a.pdf", "application/pdf")

        assert exc_info.value.operation == "sign_upload"


class TestConfirm:
    """Tests for simple upload confirmation."""

    @pytest.mark.asyncio
    async def test_confirm_then_get(self, orchestrator):
        """Test confirm completes the session and stores a download URL."""
        ticket = await orchestrator.initiate_simple("clip.mp4", "video/mp4")

        await orchestrator.confirm(ticket.session.session_id)
        session = await orchestrator.get(ticket.session.session_id)

        assert session.state == SessionState.COMPLETED
        assert session.download_url
        assert session.completed_at is not None

    @pytest.mark.asyncio
    async def test_confirm_without_download_url(self, orchestrator, storage):
        ticket = await orchestrator.initiate_simple("clip.mp4", "video/mp4")

        session = await orchestrator.confirm(ticket.session.session_id, include_download_url=False)

        assert session.state == SessionState.COMPLETED
        assert session.download_url is None
        assert storage.calls_to("generate_presigned_download_url") == []

    @pytest.mark.asyncio
    async def test_confirm_twice_rejected(self, orchestrator):
        """Test completed sessions cannot be confirmed again."""
        ticket = await orchestrator.initiate_simple("clip.mp4", "video/mp4")
        first = await orchestrator.confirm(ticket.session.session_id)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.confirm(ticket.session.session_id)

        session = await orchestrator.get(ticket.session.session_id)
        assert session.completed_at == first.completed_at

    @pytest.mark.asyncio
    async def test_confirm_multipart_rejected(self, orchestrator):
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)

        with pytest.raises(ConflictError):
            await orchestrator.confirm(ticket.session.session_id)

    @pytest.mark.asyncio
    async def test_confirm_unknown_session(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.confirm("missing")

    @pytest.mark.asyncio
    async def test_signing_failure_leaves_session_pending(self, orchestrator, storage):
        ticket = await orchestrator.initiate_simple("clip.mp4", "video/mp4")
        storage.fail_on.add("generate_presigned_download_url")

        with pytest.raises(UpstreamError):
            await orchestrator.confirm(ticket.session.session_id)

        session = await orchestrator.get(ticket.session.session_id)
        assert session.state == SessionState.PENDING


class TestMultipart:
    """Tests for multipart initiation, completion and abort."""

    @pytest.mark.asyncio
    async def test_initiate_signs_every_part(self, orchestrator, storage):
        ticket = await orchestrator.initiate_multipart(
            "big.mp4", "video/mp4", 120 * MIB, owner_id="user-1"
        )

        session = ticket.session
        assert session.state == SessionState.MULTIPART_INITIATED
        assert session.kind == SessionKind.MULTIPART
        assert session.part_count == 3
        assert session.part_size == 50 * MIB
        assert session.storage_upload_id == "upload-1"
        assert [p.part_number for p in ticket.parts] == [1, 2, 3]
        assert all("uploadId=upload-1" in p.upload_url for p in ticket.parts)
        assert "partNumber=2" in ticket.parts[1].upload_url
        assert len(storage.calls_to("create_multipart_upload")) == 1

    @pytest.mark.asyncio
    async def test_initiate_requires_size(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.initiate_multipart("big.mp4", "video/mp4", None)

    @pytest.mark.asyncio
    async def test_initiate_rejects_small_file(self, orchestrator, storage):
        """Test files that fit a single request are refused."""
        with pytest.raises(ConflictError):
            await orchestrator.initiate_multipart("small.mp4", "video/mp4", 2 * MIB)

        assert storage.calls_to("create_multipart_upload") == []

    @pytest.mark.asyncio
    async def test_initiate_rejects_above_multipart_maximum(self, orchestrator):
        """Test the multipart ceiling applies to video too."""
        with pytest.raises(CapacityError):
            await orchestrator.initiate_multipart(
                "huge.mp4", "video/mp4", MAX_MULTIPART_OBJECT_SIZE + 1
            )

    @pytest.mark.asyncio
    async def test_part_signing_failure_aborts_handle(self, orchestrator, storage, registry):
        """Test a failed part URL releases the opened multipart upload."""
        storage.fail_on_parts.add(2)

        with pytest.raises(UpstreamError):
            await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)

        assert len(storage.aborted) == 1
        assert storage.aborted[0][1] == "upload-1"
        assert await registry.list() == []

    @pytest.mark.asyncio
    async def test_part_signing_failure_with_failed_abort(self, orchestrator, storage):
        """Test the original error is raised when the cleanup abort also fails."""
        storage.fail_on_parts.add(1)
        storage.fail_on.add("abort_multipart_upload")

        with pytest.raises(UpstreamError) as exc_info:
            await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)

        assert exc_info.value.operation == "sign_part"

    @pytest.mark.asyncio
    async def test_abort_waits_for_slow_sibling_parts(self, orchestrator, storage):
        """Test the handle is released only after every part call has settled."""
        storage.fail_on_parts.add(1)
        storage.part_delay = 0.05

        with pytest.raises(UpstreamError):
            await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)
        storage.events.append("initiate_returned")

        assert sorted(storage.events[:2]) == ["signed-2", "signed-3"]
        assert storage.events[2:] == ["aborted", "initiate_returned"]

    @pytest.mark.asyncio
    async def test_several_part_failures_raise_lowest_part(self, orchestrator, storage):
        """Test every failure is collected and the handle is aborted once."""
        storage.fail_on_parts.update({2, 3})

        with pytest.raises(UpstreamError) as exc_info:
            await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)

        assert "signing part 2 failed" in exc_info.value.details
        assert len(storage.calls_to("generate_presigned_part_url")) == 3
        assert storage.events == ["signed-1", "aborted"]

    @pytest.mark.asyncio
    async def test_complete_sorts_parts(self, orchestrator, storage):
        """Test parts submitted out of order reach the provider sorted."""
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)
        shuffled = [parts_for(3)[i] for i in (2, 0, 1)]

        session = await orchestrator.complete_multipart(ticket.session.session_id, shuffled)

        [call] = storage.completed
        assert [p["part_number"] for p in call["parts"]] == [1, 2, 3]
        assert call["parts"][0]["etag"] == '"etag-1"'
        assert call["upload_id"] == "upload-1"
        assert session.state == SessionState.COMPLETED
        assert session.location == f"https://storage.test/{session.storage_key}"
        assert [p.part_number for p in session.completed_parts] == [1, 2, 3]
        assert session.completed_at is not None

    @pytest.mark.asyncio
    async def test_complete_wrong_part_count(self, orchestrator, storage):
        """Test a mismatched part count is rejected without changing state."""
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)

        with pytest.raises(ConflictError):
            await orchestrator.complete_multipart(ticket.session.session_id, parts_for(2))

        session = await orchestrator.get(ticket.session.session_id)
        assert session.state == SessionState.MULTIPART_INITIATED
        assert storage.completed == []

    @pytest.mark.asyncio
    async def test_complete_duplicate_part_numbers(self, orchestrator):
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)
        parts = [
            CompletedPart(part_number=1, etag="a"),
            CompletedPart(part_number=1, etag="b"),
            CompletedPart(part_number=3, etag="c"),
        ]

        with pytest.raises(ValidationError):
            await orchestrator.complete_multipart(ticket.session.session_id, parts)

    @pytest.mark.asyncio
    async def test_complete_simple_session_rejected(self, orchestrator):
        ticket = await orchestrator.initiate_simple("a.pdf", "application/pdf")

        with pytest.raises(ConflictError):
            await orchestrator.complete_multipart(ticket.session.session_id, parts_for(1))

    @pytest.mark.asyncio
    async def test_complete_provider_failure_keeps_state(self, orchestrator, storage):
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)
        storage.fail_on.add("complete_multipart_upload")

        with pytest.raises(UpstreamError):
            await orchestrator.complete_multipart(ticket.session.session_id, parts_for(3))

        session = await orchestrator.get(ticket.session.session_id)
        assert session.state == SessionState.MULTIPART_INITIATED

    @pytest.mark.asyncio
    async def test_abort(self, orchestrator, storage):
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)

        session = await orchestrator.abort_multipart(ticket.session.session_id)

        assert session.state == SessionState.ABORTED
        assert session.aborted_at is not None
        assert storage.aborted == [(session.storage_key, "upload-1")]

    @pytest.mark.asyncio
    async def test_abort_simple_session_rejected(self, orchestrator):
        ticket = await orchestrator.initiate_simple("a.pdf", "application/pdf")

        with pytest.raises(ConflictError):
            await orchestrator.abort_multipart(ticket.session.session_id)

    @pytest.mark.asyncio
    async def test_complete_after_abort_rejected(self, orchestrator):
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)
        await orchestrator.abort_multipart(ticket.session.session_id)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.complete_multipart(ticket.session.session_id, parts_for(3))


class TestDelete:
    """Tests for session deletion."""

    @pytest.mark.asyncio
    async def test_delete_completed_deletes_object_once(self, orchestrator, storage):
        ticket = await orchestrator.initiate_simple("a.pdf", "application/pdf")
        await orchestrator.confirm(ticket.session.session_id)

        await orchestrator.delete(ticket.session.session_id)

        assert storage.deleted_keys == [ticket.session.storage_key]
        with pytest.raises(NotFoundError):
            await orchestrator.get(ticket.session.session_id)

    @pytest.mark.asyncio
    async def test_delete_pending_skips_object(self, orchestrator, storage):
        ticket = await orchestrator.initiate_simple("a.pdf", "application/pdf")

        await orchestrator.delete(ticket.session.session_id)

        assert storage.deleted_keys == []
        assert await orchestrator.list_sessions() == []

    @pytest.mark.asyncio
    async def test_delete_aborted(self, orchestrator, storage):
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)
        await orchestrator.abort_multipart(ticket.session.session_id)

        await orchestrator.delete(ticket.session.session_id)

        assert storage.deleted_keys == []

    @pytest.mark.asyncio
    async def test_delete_in_flight_multipart_rejected(self, orchestrator):
        ticket = await orchestrator.initiate_multipart("big.mp4", "video/mp4", 120 * MIB)

        with pytest.raises(ConflictError):
            await orchestrator.delete(ticket.session.session_id)

        session = await orchestrator.get(ticket.session.session_id)
        assert session.state == SessionState.MULTIPART_INITIATED

    @pytest.mark.asyncio
    async def test_delete_object_failure_keeps_session(self, orchestrator, storage):
        ticket = await orchestrator.initiate_simple("a.pdf", "application/pdf")
        await orchestrator.confirm(ticket.session.session_id)
        storage.fail_on.add("delete_object")

        with pytest.raises(UpstreamError):
            await orchestrator.delete(ticket.session.session_id)

        session = await orchestrator.get(ticket.session.session_id)
        assert session.state == SessionState.COMPLETED

    @pytest.mark.asyncio
    async def test_delete_unknown(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.delete("missing")


class TestQueries:
    """Tests for listing and download URLs."""

    @pytest.mark.asyncio
    async def test_list_filters_by_owner_and_state(self, orchestrator):
        a = await orchestrator.initiate_simple("a.pdf", "application/pdf", owner_id="alice")
        await orchestrator.initiate_simple("b.pdf", "application/pdf", owner_id="bob")
        await orchestrator.confirm(a.session.session_id)

        alice = await orchestrator.list_sessions(owner_id="alice")
        assert [s.session_id for s in alice] == [a.session.session_id]

        pending = await orchestrator.list_sessions(state=SessionState.PENDING)
        assert [s.owner_id for s in pending] == ["bob"]

    @pytest.mark.asyncio
    async def test_download_url(self, orchestrator, storage):
        link = await orchestrator.get_download_url("uploads/u/file.pdf", expires_in=60)

        assert link.download_url == "https://storage.test/uploads/u/file.pdf?op=get"
        assert link.expires_in == 60
        assert storage.calls_to("generate_presigned_download_url") == [("uploads/u/file.pdf", 60)]

    @pytest.mark.asyncio
    async def test_download_url_default_ttl(self, orchestrator, test_settings):
        link = await orchestrator.get_download_url("uploads/u/file.pdf")
        assert link.expires_in == test_settings.download_url_expiry_seconds

    @pytest.mark.asyncio
    async def test_download_url_requires_key(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.get_download_url("  ")

    @pytest.mark.asyncio
    async def test_download_url_rejects_non_positive_ttl(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.get_download_url("uploads/u/file.pdf", expires_in=0)
