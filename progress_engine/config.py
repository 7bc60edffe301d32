"""
Configuration management for the progress engine
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database Configuration
    database_url: str = Field(default="sqlite:///data/progress.db")

    # Application Configuration
    log_level: str = Field(default="INFO")

    # Learning Configuration
    default_learning_direction: str = Field(default="ru-it")
    review_history_enabled: bool = Field(default=True)
    mastered_level_threshold: int = Field(default=4, ge=1, le=5)
    stats_streak_window: int = Field(default=10, ge=1)

    # Offline Sync Configuration
    sync_retry_interval: float = Field(default=30.0, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def get_database_path(database_url: str | None = None) -> str:
    """Get the database file path from URL"""
    url = database_url or get_settings().database_url
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "")
    return "data/progress.db"
