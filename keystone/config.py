"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    db_engine: str = "sqlite"
    db_uri: Optional[str] = None  # required at bootstrap
    db_slow_threshold: int = 400  # milliseconds
    log_query: str = ""

    # Templates
    template_folder: str = "./templates"
    template_disable: bool = False

    # Access control
    roles_file: Optional[str] = None  # JSON role definition, built-in roles when unset

    # HTTP client
    http_client_timeout: float = 30.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    project_name: str = "Keystone"
    version: str = "0.1.0"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
