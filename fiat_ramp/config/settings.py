"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Onramper Configuration
    onramper_base_url: str = Field(
        default="https://api.onramper.com", description="Onramper API base URL"
    )
    onramper_api_key: str = Field(default="", description="Onramper API key")
    onramper_webhook_secret: str = Field(..., description="Onramper webhook signing secret")
    onramper_timeout_seconds: float = Field(
        default=10.0, description="Timeout for Onramper API calls (seconds)"
    )
    webhook_signature_header: str = Field(
        default="X-Onramper-Webhook-Signature",
        description="Header carrying the HMAC-SHA256 hex digest of the webhook body",
    )

    # Database Configuration
    database_url: str = Field(..., description="Ledger database connection URL")
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")
    store_timeout_seconds: float = Field(
        default=5.0, description="Timeout applied to every ledger store call (seconds)"
    )

    # Application Configuration
    app_name: str = Field(default="fiat-ramp-relay", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8080, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8080",
        description="CORS allowed origins (comma-separated)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("onramper_webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Reject a blank webhook secret at startup."""
        if not v.strip():
            raise ValueError("Onramper webhook secret must not be empty")
        return v

    @field_validator("onramper_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate Onramper base URL scheme and strip the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Onramper base URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
