"""Error taxonomy for upload session operations.

Every error carries the HTTP status and machine-readable code the API layer
reports. ``details`` holds raw diagnostic text that is only exposed to
clients in development mode.
"""

from typing import Any


class UploadError(Exception):
    """Base class for upload session errors."""

    status_code: int = 500
    error_code: str = "UPLOAD_ERROR"

    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(UploadError):
    """Malformed or missing input."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundError(UploadError):
    """Unknown session id."""

    status_code = 404
    error_code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Upload not found", details={"session_id": session_id})


class ConflictError(UploadError):
    """Operation does not apply to the session's kind or state."""

    status_code = 400
    error_code = "INVALID_OPERATION"


class CapacityError(UploadError):
    """File exceeds the configured size ceiling."""

    status_code = 413
    error_code = "FILE_TOO_LARGE"


class UpstreamError(UploadError):
    """Storage provider call failed or timed out."""

    status_code = 502
    error_code = "STORAGE_ERROR"

    def __init__(self, operation: str, details: Any = None):
        self.operation = operation
        super().__init__(f"Storage provider error during {operation}", details=details)


class ConfigurationError(UploadError):
    """Storage provider is not configured."""

    status_code = 503
    error_code = "STORAGE_NOT_CONFIGURED"
