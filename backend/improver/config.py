"""Application configuration using Pydantic settings."""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    environment: str = "development"
    log_level: Optional[str] = None  # e.g. "WARNING"; defaults by environment

    # CORS (the recorder posts from arbitrary customer origins)
    allowed_origins: str = "*"

    # Redis (for ARQ worker)
    redis_url: str = "redis://127.0.0.1:6379"

    # Remote recording storage (PostHog-compatible snapshots API)
    remote_api_url: str = "https://us.posthog.com/api"
    remote_project_id: Optional[str] = None
    remote_api_key: Optional[str] = None
    remote_chunk_window: int = 20  # Upstream ceiling on blob keys per range request
    remote_fetch_concurrency: int = 4
    remote_timeout_seconds: float = 30.0
    remote_sync_limit: int = 20
    remote_sync_interval_minutes: int = 5

    # Ingest store
    store_max_write_attempts: int = 5

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
