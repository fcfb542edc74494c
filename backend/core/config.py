"""Application settings loaded from the environment."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the feed backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "feed-backend"
    app_env: str = "local"
    log_level: str = "INFO"

    host: str = "0.0.0.0"
    port: int = 3000

    database_url: str = "sqlite+aiosqlite:///./feed.db"
    db_echo: bool = False

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 24 * 60
    bcrypt_rounds: int = 12

    default_page_size: int = 10

    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    storage_backend: Literal["local", "minio"] = "local"
    upload_dir: str = "uploads"
    upload_url_prefix: str = "/uploads"
    upload_max_bytes: int = 10 * 1024 * 1024

    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "uploads"
    minio_secure: bool = False
    # Base URL the bucket is publicly reachable under; derived from the endpoint when empty.
    minio_public_url: str = ""

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_cors_origins(cls, value: object) -> object:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("upload_url_prefix")
    @classmethod
    def _normalize_upload_prefix(cls, value: str) -> str:
        normalized = "/" + value.strip().strip("/")
        if normalized == "/":
            raise ValueError("upload_url_prefix must not be the site root")
        return normalized


settings = Settings()
