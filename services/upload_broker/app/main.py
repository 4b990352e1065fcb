"""Upload Broker Service - FastAPI application entry point."""

import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from services.upload_broker.app.api.routes import router
from services.upload_broker.app.config import Settings, get_settings
from services.upload_broker.app.core.errors import UploadError
from services.upload_broker.app.dependencies import get_storage_client
from services.upload_broker.app.middleware import CorrelationMiddleware, RequestLoggingMiddleware
from services.upload_broker.app.middleware.correlation import CORRELATION_ID_HEADER
from shared.schemas.api_responses import error_envelope
from shared.utils.logging import configure_logging, get_correlation_id, get_logger
from shared.utils.metrics import MetricsMiddleware, metrics_endpoint

settings = get_settings()

# Configure logging
configure_logging(
    service_name=settings.service_name,
    log_level=settings.log_level,
    json_format=settings.log_json,
    environment=settings.environment,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(
        "starting_service",
        service=settings.service_name,
        environment=settings.environment,
        api_prefix=settings.api_prefix,
    )
    if not get_storage_client(settings).is_configured():
        logger.warning("storage_not_configured", bucket=settings.s3_bucket or None)

    yield

    logger.info("service_shutdown_complete")


app = FastAPI(
    title="Upload Broker Service",
    description="Signed-URL upload sessions for direct-to-storage file transfers",
    version=settings.service_version,
    lifespan=lifespan,
)

# Add CORS middleware (all settings from environment config)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add request logging middleware (structured logging with context)
app.add_middleware(
    RequestLoggingMiddleware,
    exclude_paths=[f"{settings.api_prefix}/health", "/metrics"],
)

# Add metrics middleware
app.add_middleware(MetricsMiddleware)

# Add correlation ID middleware (outermost)
app.add_middleware(CorrelationMiddleware)


def _current_settings(request: Request) -> Settings:
    """Resolve settings the same way route dependencies do."""
    provider = request.app.dependency_overrides.get(get_settings, get_settings)
    return provider()


def _correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None) or get_correlation_id() or None


def _error_response(
    request: Request,
    code: str,
    status_code: int,
    message: str,
    details=None,
    exc: Exception | None = None,
) -> JSONResponse:
    """Build an error envelope. Diagnostics are only exposed in development.

    The correlation header is set here because unhandled exceptions are
    rendered outside CorrelationMiddleware.
    """
    current = _current_settings(request)
    correlation_id = _correlation_id(request)
    stack = None
    if current.is_development and exc is not None:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    response = JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            status=status_code,
            message=message,
            details=details if current.is_development else None,
            stack=stack,
            correlation_id=correlation_id,
        ),
    )
    if correlation_id:
        response.headers[CORRELATION_ID_HEADER] = correlation_id
    return response


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    """Map domain errors to the response envelope."""
    log_method = logger.error if exc.status_code >= 500 else logger.warning
    log_method(
        "upload_error",
        error_code=exc.error_code,
        status_code=exc.status_code,
        message=exc.message,
        details=exc.details,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(
        request,
        code=exc.error_code,
        status_code=exc.status_code,
        message=exc.message,
        details=exc.details,
        exc=exc,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies and parameters as validation errors."""
    logger.warning("request_validation_failed", path=request.url.path, errors=len(exc.errors()))
    return _error_response(
        request,
        code="VALIDATION_ERROR",
        status_code=400,
        message="Invalid request",
        details=[
            {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
            for error in exc.errors()
        ],
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Wrap framework HTTP errors (unknown routes, bad methods) in the envelope."""
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    return _error_response(
        request,
        code=code,
        status_code=exc.status_code,
        message=str(exc.detail) if exc.status_code != 404 else "Route not found",
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.exception(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(
        request,
        code="INTERNAL_ERROR",
        status_code=500,
        message="An internal error occurred",
        details=str(exc),
        exc=exc,
    )


# Include routes
app.include_router(router, prefix=settings.api_prefix)

# Add metrics endpoint
app.add_route("/metrics", metrics_endpoint)


@app.get("/")
async def root():
    """Service info."""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment,
        "api_prefix": settings.api_prefix,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.upload_broker.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
