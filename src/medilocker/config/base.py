"""Base configuration settings."""

import os
import secrets
import warnings
from typing import Literal, Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values are read from the environment and an optional ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Medilocker"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Database
    database_url: str = "sqlite:///./medilocker.db"
    database_pool_size: int = 20
    database_max_overflow: int = 40

    # Identity
    jwt_secret_key: str = Field(
        default_factory=lambda: os.getenv("JWT_SECRET_KEY", ""),
        description="JWT signing key - MUST be set in production",
    )
    jwt_algorithm: str = "HS256"
    token_issuer: str = "medilocker"

    # Records
    min_commit_message_length: int = 5
    max_commit_message_length: int = 300
    commit_log_default_limit: int = 100
    commit_log_max_limit: int = 500
    max_upload_bytes: int = 20 * 1024 * 1024
    download_url_ttl_seconds: int = 3600
    version_append_attempts: int = 3

    # Access requests
    default_expiry_days: int = 30
    max_expiry_days: int = 365
    request_list_limit: int = 50

    # Contribution statistics
    activity_window_days: int = 365
    aggregator_max_attempts: int = 5

    # Blob storage
    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: str = "./var/blobs"
    s3_bucket_name: str = "medilocker-records"
    aws_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None

    # Collaborator boundary
    collaborator_timeout_seconds: float = 10.0
    collaborator_max_attempts: int = 3

    # Background jobs
    broker_url: str = "redis://localhost:6379/0"
    expiry_sweep_interval_minutes: int = 60

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_secret_keys(cls, v: str, info: ValidationInfo) -> str:
        """Validate that secret keys are not default values in production."""
        if not v or "change-me" in v.lower():
            env = os.getenv("ENVIRONMENT", "development").lower()
            if env in ["production", "staging"]:
                raise ValueError(
                    f"{info.field_name} must be set to a secure value in {env}"
                )
            secure_key = secrets.token_urlsafe(64)
            warnings.warn(
                f"SECURITY WARNING: {info.field_name} is not set. "
                "Generated a temporary key for development.",
                stacklevel=2,
            )
            return secure_key
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("min_commit_message_length", "default_expiry_days")
    @classmethod
    def validate_positive(cls, v: int, info: ValidationInfo) -> int:
        """Reject non-positive limits."""
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")
