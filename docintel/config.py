"""
Application configuration using pydantic-settings.

Loads configuration from environment variables with sensible defaults.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "DocIntel"
    environment: str = "development"

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite:///./docintel.db"

    # Redis (Celery broker and result backend)
    redis_url: str = "redis://localhost:6379/0"

    # Error tracking
    sentry_dsn: Optional[str] = None

    # File storage
    upload_dir: Path = Path("./uploads")
    reference_data_dir: Path = Path(__file__).parent / "data"
    filing_base_path: str = "/documents"

    # Application
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000"]

    # Pipeline
    min_template_confidence: float = 0.3
    enable_post_processing: bool = True
    enable_validation: bool = True
    default_language: str = "en"

    # Stage events
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    webhook_timeout: float = 10.0

    # OCR Settings
    tesseract_cmd: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
