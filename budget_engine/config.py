"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./budget.db"

    # External Services
    conversion_api_base: str = "http://localhost:8001"

    # Service
    service_name: str = "budget-engine"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0
    conversion_max_retries: int = 3
    conversion_backoff_base: float = 0.5  # Exponential backoff base in seconds

    # Query cache
    conversion_stale_seconds: float = 120.0
    records_stale_seconds: float = 120.0
    cache_gc_seconds: float = 600.0


settings = Settings()
