"""Upload Broker configuration via environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_FILE_TYPES = [
    "video/mp4",
    "video/quicktime",
    "video/webm",
    "video/x-matroska",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
]


class Settings(BaseSettings):
    """Upload Broker configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="UPLOAD_",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars not defined in this model
    )

    # Service settings
    service_name: str = "upload-broker"
    service_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    # API settings
    api_prefix: str = "/api/upload"
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    cors_allow_headers: list[str] = ["Content-Type", "Authorization", "X-Requested-With"]

    # S3 settings
    s3_bucket: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None  # LocalStack / MinIO
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    provider_timeout_seconds: float = Field(30.0, gt=0)

    # Upload settings
    upload_path_prefix: str = "uploads/"
    presigned_url_expiry_seconds: int = Field(3600, gt=0)
    download_url_expiry_seconds: int = Field(3600, gt=0)
    allowed_file_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_FILE_TYPES),
        description="Exact, case-sensitive MIME allow-list. Empty admits nothing.",
    )
    max_file_size_bytes: int = Field(32212254720, ge=0)  # 30 GiB, not applied to video/*

    # Multipart settings
    multipart_preferred_part_size: int = Field(50 * 1024 * 1024, gt=0)
    part_url_concurrency: int = Field(16, gt=0)

    @property
    def is_development(self) -> bool:
        """Whether diagnostic detail may be exposed to clients."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
