"""Checks applied to upload initiation requests before any state changes."""

from services.upload_broker.app.core.errors import CapacityError, ValidationError


def _format_gib(size_bytes: int) -> str:
    return f"{size_bytes / (1024 ** 3):.1f}GB"


def validate_initiation(
    file_name: str | None,
    content_type: str | None,
    file_size: int | None,
    allowed_file_types: list[str],
    max_file_size_bytes: int,
) -> None:
    """Validate the metadata of a new upload.

    Checks run in order: required fields, size, then content type. Video
    content types skip the size ceiling.

    Args:
        file_name: Client file name
        content_type: Client MIME type
        file_size: Reported size in bytes, if known
        allowed_file_types: Exact, case-sensitive MIME allow-list
        max_file_size_bytes: Size ceiling for non-video uploads

    Raises:
        ValidationError: Missing fields, negative size, or disallowed type
        CapacityError: Non-video file larger than the ceiling
    """
    if not file_name or not file_name.strip():
        raise ValidationError("file_name is required")

    if not content_type or not content_type.strip():
        raise ValidationError("content_type is required")

    if file_size is not None:
        if file_size < 0:
            raise ValidationError("file_size must be non-negative", details={"file_size": file_size})

        if not content_type.startswith("video/") and file_size > max_file_size_bytes:
            raise CapacityError(
                "File too large",
                details=(
                    f"File size {_format_gib(file_size)} exceeds maximum allowed size "
                    f"of {_format_gib(max_file_size_bytes)}"
                ),
            )

    if content_type not in allowed_file_types:
        raise ValidationError(
            "Invalid file type",
            details=f"Allowed types: {','.join(allowed_file_types)}",
        )
