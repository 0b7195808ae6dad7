"""Clic-Tools — Application configuration via pydantic-settings."""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Database (file-based SQLite by default; postgresql+asyncpg://... for shared deployments)
    DATABASE_URL: str = "sqlite+aiosqlite:///./warehouse.db"

    # Redis (rate limiting)
    REDIS_URL: str = "redis://localhost:6379/1"
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 600

    # JWT
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_TTL_MINUTES: int = 480

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:9003"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@lru_cache
def get_settings() -> Settings:
    return Settings()
