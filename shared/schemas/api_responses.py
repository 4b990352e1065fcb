"""Standard API response envelopes."""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, model_serializer

T = TypeVar("T")


class ErrorBody(BaseModel):
    """Error payload carried inside a failed envelope."""

    code: str = Field(..., description="Machine-readable error code")
    status: int = Field(..., description="HTTP status code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Any] = Field(None, description="Diagnostic detail (development only)")
    stack: Optional[str] = Field(None, description="Traceback (development only)")


class APIResponse(BaseModel, Generic[T]):
    """Standard API response wrapper."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[ErrorBody] = None
    correlation_id: Optional[str] = None

    @model_serializer(mode="wrap")
    def serialize_envelope(self, handler):
        # Successful envelopes read {success, data, correlation_id}
        data = handler(self)
        if self.error is None:
            data.pop("error", None)
        return data


def error_envelope(
    code: str,
    status: int,
    message: str,
    details: Any = None,
    stack: str | None = None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Build a JSON-ready failed envelope."""
    response: APIResponse[None] = APIResponse(
        success=False,
        error=ErrorBody(
            code=code,
            status=status,
            message=message,
            details=details,
            stack=stack,
        ),
        correlation_id=correlation_id,
    )
    return response.model_dump(mode="json", exclude_none=True)
