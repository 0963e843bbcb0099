"""
Tubely Configuration Management Module

This module provides configuration management for the Tubely video backend
using Pydantic Settings. It loads and validates all environment variables
required for:
- Application settings (name, environment, debug mode, logging)
- Bearer token verification (shared HMAC secret and signing algorithm)
- MongoDB connection for video metadata records
- S3/MinIO object storage and the public delivery domain
- Upload limits and temporary staging
- External media tools (ffmpeg / ffprobe)

All settings support environment variable overrides and .env file loading.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# HMAC signing algorithms accepted for bearer tokens
HMAC_ALGORITHMS: tuple[str, ...] = ("HS256", "HS384", "HS512")

# 1 GiB hard ceiling for a single upload request body
DEFAULT_MAX_UPLOAD_SIZE_BYTES: int = 1 << 30


class Settings(BaseSettings):
    """
    Configuration settings for the Tubely backend.

    Configuration Categories:
    - Application: Core app settings like name, environment, debug mode
    - Auth: Shared secret and algorithm used to verify bearer tokens
    - MongoDB: Database connection URI and connection pool settings
    - S3/MinIO: Object storage credentials, bucket and delivery domain
    - Upload: Body size ceiling, staging directory and sniffing window
    - Media tools: ffmpeg / ffprobe executables

    Example usage:
        ```python
        from tubely.config import get_settings

        settings = get_settings()
        print(f"Uploading to bucket: {settings.s3_bucket_name}")
        ```
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(
        default="Tubely",
        description="Application name displayed in API documentation and logs",
    )

    app_env: str = Field(
        default="development",
        description="Application environment (development, staging, production, testing)",
    )

    debug: bool = Field(default=False, description="Enable debug mode with verbose logging")

    log_level: str = Field(
        default="info", description="Logging level (debug, info, warning, error, critical)"
    )

    log_json: bool = Field(
        default=False, description="Emit structured JSON log lines instead of plain text"
    )

    host: str = Field(default="0.0.0.0", description="Host address for the API server to bind to")

    port: int = Field(default=8091, description="Port number for the API server", ge=1, le=65535)

    cors_origins: list[str] = Field(
        default=["http://localhost:8091"],
        description="List of allowed CORS origins for the web client",
    )

    # =========================================================================
    # Auth Configuration
    # =========================================================================

    jwt_secret: str = Field(
        default="development-jwt-secret-change-in-production-32chars",
        description="Shared secret used to verify HMAC-signed bearer tokens",
        min_length=32,
    )

    jwt_algorithm: str = Field(
        default="HS256",
        description="HMAC algorithm bearer tokens must be signed with; any other is rejected",
    )

    # =========================================================================
    # MongoDB Configuration
    # =========================================================================

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (e.g., mongodb://localhost:27017)",
    )

    mongodb_db_name: str = Field(
        default="tubely", description="MongoDB database name for video metadata records"
    )

    mongodb_min_pool_size: int = Field(
        default=1, description="Minimum number of connections in MongoDB connection pool", ge=0
    )

    mongodb_max_pool_size: int = Field(
        default=50, description="Maximum number of connections in MongoDB connection pool", ge=1
    )

    # =========================================================================
    # S3/MinIO Storage Configuration
    # =========================================================================

    s3_endpoint_url: str | None = Field(
        default=None, description="S3-compatible endpoint URL for MinIO (None for AWS S3)"
    )

    s3_access_key_id: str | None = Field(
        default=None,
        description="S3/MinIO access key ID (None to use the default AWS credential chain)",
    )

    s3_secret_access_key: str | None = Field(
        default=None,
        description="S3/MinIO secret access key (None to use the default AWS credential chain)",
    )

    s3_bucket_name: str = Field(
        default="tubely-videos", description="S3 bucket name for processed videos"
    )

    s3_region: str = Field(default="us-east-1", description="AWS region for the S3 bucket")

    delivery_domain: str = Field(
        default="localhost:9000",
        description="Public delivery host (e.g., a CloudFront distribution) serving the bucket",
        min_length=1,
    )

    # =========================================================================
    # Upload Settings
    # =========================================================================

    max_upload_size_bytes: int = Field(
        default=DEFAULT_MAX_UPLOAD_SIZE_BYTES,
        description="Maximum request body size for a video upload (1 GiB)",
        ge=1,
    )

    upload_temp_dir: str | None = Field(
        default=None,
        description="Base directory for per-request staging (None for the system temp dir)",
    )

    sniff_bytes: int = Field(
        default=512,
        description="Number of leading bytes used to sniff the content type",
        ge=1,
    )

    disconnect_poll_interval_seconds: float = Field(
        default=0.5,
        description="How often an in-flight upload checks whether the client went away",
        gt=0,
    )

    # =========================================================================
    # Media Tool Settings
    # =========================================================================

    ffmpeg_path: str = Field(default="ffmpeg", description="Path to the ffmpeg executable")

    ffprobe_path: str = Field(default="ffprobe", description="Path to the ffprobe executable")

    # =========================================================================
    # Model Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        normalized = v.lower()
        if normalized not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return normalized

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate that app_env is a valid environment name."""
        valid_envs = {"development", "staging", "production", "testing"}
        normalized = v.lower()
        if normalized not in valid_envs:
            raise ValueError(f"Invalid app_env '{v}'. Must be one of: {', '.join(valid_envs)}")
        return normalized

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only HMAC algorithms can be verified with a shared secret."""
        normalized = v.upper()
        if normalized not in HMAC_ALGORITHMS:
            raise ValueError(
                f"Invalid jwt_algorithm '{v}'. Must be one of: {', '.join(HMAC_ALGORITHMS)}"
            )
        return normalized

    @field_validator("delivery_domain")
    @classmethod
    def validate_delivery_domain(cls, v: str) -> str:
        """Strip any scheme and trailing slash so URLs can be built as https://<domain>/<key>."""
        domain = v.strip()
        for scheme in ("https://", "http://"):
            if domain.startswith(scheme):
                domain = domain[len(scheme) :]
        domain = domain.rstrip("/")
        if not domain:
            raise ValueError("delivery_domain must not be empty")
        return domain


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Uses functools.lru_cache so the environment is read only once per process.
    Also usable as a FastAPI dependency, which tests override.

    Returns:
        Settings: Cached settings instance.
    """
    return Settings()
