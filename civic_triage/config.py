"""
Configuration management using pydantic-settings and python-dotenv
"""
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///civic_triage.db",
        description="Async database connection URL",
        alias="DATABASE_URL"
    )
    DATABASE_ECHO: bool = Field(
        default=False,
        description="Echo SQL queries for debugging",
        alias="DATABASE_ECHO"
    )

    # External classifier
    OPENAI_API_KEY: Optional[str] = Field(
        default=None,
        description="OpenAI API key for the complaint classifier",
        alias="OPENAI_API_KEY"
    )
    CLASSIFIER_MODEL: str = Field(
        default="gpt-3.5-turbo",
        description="Chat model used to classify complaint text"
    )
    CLASSIFIER_CATEGORIES: List[str] = Field(
        default=[
            "Infrastructure", "Sanitation", "Water", "Electricity",
            "Traffic", "Public Safety", "Environment", "Other"
        ],
        description="Category labels the classifier may return"
    )

    # Historical trend service
    TREND_SERVICE_URL: Optional[str] = Field(
        default=None,
        description="Base URL of the historical-trend service"
    )

    # Application
    ENVIRONMENT: str = Field(
        default="development",
        description="Application environment"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    # Outbound HTTP
    MAX_RETRIES: int = Field(
        default=3,
        description="Maximum retry attempts for HTTP requests"
    )
    REQUEST_TIMEOUT: int = Field(
        default=30,
        description="HTTP request timeout in seconds"
    )

    # Duplicate detection
    DEDUP_RADIUS_METERS: float = Field(
        default=150.0,
        description="Radius within which complaints are duplicate candidates"
    )
    TEXT_SIMILARITY_THRESHOLD: float = Field(
        default=0.4,
        description="Minimum text similarity for a duplicate candidate"
    )
    TEXT_SCORE_WEIGHT: float = Field(
        default=0.6,
        description="Weight of text similarity in the combined match score"
    )
    PROXIMITY_SCORE_WEIGHT: float = Field(
        default=0.4,
        description="Weight of spatial proximity in the combined match score"
    )
    EMPTY_TEXT_MIN_PROXIMITY: float = Field(
        default=0.9,
        description="Minimum proximity score for merging a report without text"
    )
    RECENCY_WINDOW_DAYS: float = Field(
        default=30.0,
        description="Complaints not updated within this window are not merge targets"
    )
    CENTROID_SHIFT_METERS: float = Field(
        default=10.0,
        description="Centroid movement that triggers a geo-index re-insert"
    )
    GEO_CELL_SIZE_METERS: float = Field(
        default=150.0,
        description="Grid cell size for geo-index buckets and ingestion locks"
    )
    TREND_AREA_CELL_METERS: float = Field(
        default=1000.0,
        description="Grid cell size used as the area key for trend weights"
    )

    # Prioritization
    SEVERITY_WEIGHT: float = Field(default=1.0, description="Weight of severity")
    DUPLICATES_WEIGHT: float = Field(default=1.0, description="Weight of log-damped linked report count")
    AGE_WEIGHT: float = Field(default=1.5, description="Weight of the age factor")
    TREND_WEIGHT: float = Field(default=1.0, description="Weight of the historical trend")
    SEVERITY_VALUES: Dict[str, float] = Field(
        default={"low": 1.0, "medium": 2.0, "high": 3.0, "critical": 4.0},
        description="Numeric value per severity level"
    )
    UNKNOWN_SEVERITY_VALUE: float = Field(
        default=1.0,
        description="Numeric value used when a complaint has no severity"
    )
    AGE_HORIZON_DAYS: float = Field(
        default=14.0,
        description="Age at which the age factor saturates"
    )

    # Concurrency
    LOCK_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        description="Timeout for acquiring an ingestion lock"
    )
    LOCK_MAX_RETRIES: int = Field(
        default=3,
        description="Attempts made before a lock conflict is surfaced"
    )
    LOCK_BACKOFF_BASE_SECONDS: float = Field(
        default=0.05,
        description="Base delay for exponential backoff between lock attempts"
    )

    # Background work
    RESCORE_INTERVAL_SECONDS: int = Field(
        default=3600,
        description="Interval between periodic rescoring sweeps"
    )
    EVENT_HISTORY_SIZE: int = Field(
        default=500,
        description="Number of recent status events kept in memory"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "allow"  # Allow extra fields from environment variables


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
