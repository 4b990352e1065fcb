"""Middleware for the Upload Broker service."""

from services.upload_broker.app.middleware.correlation import CorrelationMiddleware
from services.upload_broker.app.middleware.logging import RequestLoggingMiddleware

__all__ = ["CorrelationMiddleware", "RequestLoggingMiddleware"]
