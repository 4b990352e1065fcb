"""Shared Pydantic schemas for upload broker services."""

from shared.schemas.api_responses import APIResponse, ErrorBody, error_envelope

__all__ = [
    "APIResponse",
    "ErrorBody",
    "error_envelope",
]
