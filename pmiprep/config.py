"""
Configuration settings for the pmi-prep core.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

import sys
from functools import lru_cache
from typing import Literal

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Document Store Backend
    # ========================================
    store_backend: Literal["appwrite", "sql", "memory"] = Field(
        default="sql",
        description="Which document store implementation to use",
    )
    sql_database_url: str = Field(
        default="sqlite:///data/pmiprep.db",
        description="SQLAlchemy URL for the local document store",
    )
    store_fallback_to_sql: bool = Field(
        default=False,
        description="Mirror reads to the local SQL store when the remote backend fails",
    )

    # ========================================
    # Appwrite
    # ========================================
    appwrite_endpoint: str = Field(
        default="",
        description="Appwrite API endpoint (e.g. https://cloud.appwrite.io/v1)",
    )
    appwrite_project_id: str = Field(
        default="",
        description="Appwrite project ID",
    )
    appwrite_api_key: str | None = Field(
        default=None,
        description="Server API key (omit to rely on session cookies)",
    )
    appwrite_database_id: str = Field(
        default="",
        description="Appwrite database ID holding all collections",
    )
    appwrite_bucket_id: str = Field(
        default="",
        description="Storage bucket for resource files",
    )

    # ─── Collections ────────────────────────────────────────────────────────────
    questions_collection_id: str = Field(default="questions")
    quiz_attempts_collection_id: str = Field(default="quiz-attempts")
    user_progress_collection_id: str = Field(default="user-progress")
    enrollments_collection_id: str = Field(default="enrollments")
    unenrollment_requests_collection_id: str = Field(default="unenrollment-requests")
    resources_collection_id: str = Field(default="resources")
    resource_downloads_collection_id: str = Field(default="resource-downloads")
    profiles_collection_id: str = Field(default="profiles")

    # ========================================
    # HTTP Behaviour
    # ========================================
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for remote calls",
    )
    http_retries: int = Field(
        default=3,
        description="Retry attempts for idempotent requests on 5xx",
    )
    http_backoff_factor: float = Field(
        default=0.5,
        description="Exponential backoff factor between retries",
    )

    # ========================================
    # Currency
    # ========================================
    exchange_rate_url: str = Field(
        default="https://api.exchangerate-api.com/v4/latest/GHS",
        description="Exchange rate feed (base currency GHS)",
    )
    base_currency: str = Field(default="GHS")

    # ========================================
    # Quiz & Progress
    # ========================================
    default_question_count: int = Field(default=25)
    strong_area_threshold: float = Field(
        default=70.0,
        description="Accuracy (%) at or above which an area is strong",
    )
    weak_area_threshold: float = Field(
        default=60.0,
        description="Accuracy (%) below which an area is weak",
    )

    # ========================================
    # Authorization
    # ========================================
    admin_label: str = Field(
        default="admin",
        description="Account label that grants admin capability",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def collection_ids(self) -> dict[str, str]:
        """Map logical collection names to backend collection IDs."""
        return {
            "questions": self.questions_collection_id,
            "quiz-attempts": self.quiz_attempts_collection_id,
            "user-progress": self.user_progress_collection_id,
            "enrollments": self.enrollments_collection_id,
            "unenrollment-requests": self.unenrollment_requests_collection_id,
            "resources": self.resources_collection_id,
            "resource-downloads": self.resource_downloads_collection_id,
            "profiles": self.profiles_collection_id,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Install loguru sinks. Called by entry points, never by library code."""
    settings = settings or get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="10 MB",
            retention=5,
        )
