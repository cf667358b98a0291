"""
Configuration and settings for the CrowdSolve backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings, frozen once constructed."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    app_name: str = Field(default="CrowdSolve API")
    app_version: str = Field(default="1.0.0")
    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    log_level: str = Field(default="INFO")
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"]
    )

    # Database (any SQLAlchemy URL; Postgres expected in production)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Credentials
    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")
    token_ttl_hours: int = Field(default=24, ge=1)
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # S3-compatible asset storage
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    asset_public_base_url: Optional[str] = Field(default=None)
    asset_folder: str = Field(default="crowdsolve")
    storage_connect_timeout: float = Field(default=5.0)
    storage_read_timeout: float = Field(default=30.0)

    # Uploaded images are bounded to this box before storage
    image_max_width: int = Field(default=1200)
    image_max_height: int = Field(default=800)
    image_quality: int = Field(default=85, ge=1, le=95)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
