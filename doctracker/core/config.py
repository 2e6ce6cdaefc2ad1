from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global settings for the document tracker.
    Values are read from the environment and from the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Project
    project_name: str = "Document Tracker API"
    api_v1_str: str = "/api/v1"
    debug: bool = False

    # Security / JWT
    secret_key: str = "changeme"
    access_token_expire_minutes: int = 60
    refresh_token_expire_minutes: int = 10080
    algorithm: str = "HS256"

    # Database
    database_url: str = "sqlite:///./dev.db"

    # S3 / MinIO storage
    s3_endpoint_url: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_bucket_documents: str = "documents"
    s3_public_base_url: Optional[str] = None

    # Local storage
    doctracker_storage: str = "_storage"

    # CORS
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Public URLs (links inside notifications)
    public_base_url: str = "http://localhost:8000"
    public_app_url: str = "http://localhost:5173"

    # Uploads
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_upload_types: List[str] = [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "image/png",
        "image/jpeg",
        "image/jpg",
    ]

    # Notifications
    notification_list_limit: int = 50
    live_heartbeat_seconds: float = 15.0

    # Web Push (VAPID)
    vapid_public_key: Optional[str] = None
    vapid_private_key: Optional[str] = None
    vapid_claims_subject: str = "mailto:admin@example.com"
    push_ttl_seconds: int = 86400
    push_icon: str = "/favicon.ico"

    # Logging
    log_dir: str = "log"

    def resolved_public_app_url(self) -> str:
        """Base URL of the front end, used for links in push payloads."""
        base = (self.public_app_url or "").strip()
        if base:
            return base.rstrip("/")
        return (self.public_base_url or "").rstrip("/")

    def push_enabled(self) -> bool:
        return bool(self.vapid_private_key)


@lru_cache
def get_settings() -> Settings:
    """Returns the cached global settings instance."""
    return Settings()


settings = get_settings()
