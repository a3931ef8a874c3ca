"""
Configuration settings for the Medication Viewer
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Data directories
    DATA_DIR: Path = Path("data")

    # Document store settings
    DATABASE_URL: str = "sqlite:///./data/medications.db"
    DATABASE_ECHO: bool = False
    MEDICATIONS_COLLECTION: str = "medications"

    # Pagination settings
    PAGE_SIZE: int = 100
    BULK_PAGE_SIZE: int = 100

    # Resolver API settings
    RESOLVER_API_BASE_URL: str = "http://localhost:8080/medications"
    RESOLVER_API_TIMEOUT: int = 30
    RESOLVER_API_RETRY_ATTEMPTS: int = 3
    RESOLVER_API_RETRY_DELAY: int = 1

    # API settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_RELOAD: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[Path] = DATA_DIR / "logs" / "viewer.log"


# Global settings instance
settings = Settings()


def is_store_configured() -> bool:
    """Check if the document store is configured"""
    return bool(settings.DATABASE_URL and settings.MEDICATIONS_COLLECTION)


def ensure_directories():
    """Ensure all required directories exist"""
    directories = [
        settings.DATA_DIR,
        settings.LOG_FILE.parent if settings.LOG_FILE else None
    ]

    for directory in directories:
        if directory:
            directory.mkdir(parents=True, exist_ok=True)


# Ensure directories exist when module is imported
ensure_directories()
