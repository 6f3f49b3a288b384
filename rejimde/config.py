"""
Configuration Module

Manages application configuration using pydantic-settings.
Loads environment variables and provides typed configuration objects.
"""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend API Configuration
    wp_api_url: str = Field(
        default="http://localhost/wp-json",
        validation_alias=AliasChoices("NEXT_PUBLIC_WP_API_URL", "WP_API_URL"),
        description="Base URL of the WordPress REST API",
    )
    request_timeout: int = Field(default=30, ge=1, le=120)
    avatar_base_url: str = Field(
        default="https://api.dicebear.com/9.x/personas/svg",
        description="Placeholder avatar generator (seeded by name)",
    )

    # Calendar Grid Configuration
    calendar_start_hour: int = Field(default=8, ge=0, le=23)
    calendar_end_hour: int = Field(default=20, ge=1, le=24)
    calendar_hour_height: int = Field(default=64, ge=1)
    default_appointment_duration: int = Field(default=60, ge=5, le=600)

    # Application Settings
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=8000, ge=1024, le=65535)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    @field_validator("wp_api_url", mode="before")
    @classmethod
    def validate_wp_api_url(cls, v: str) -> str:
        """Ensure the API URL is absolute and has no trailing slash."""
        if isinstance(v, str):
            v = v.strip().rstrip("/")
            if not v.startswith(("http://", "https://")):
                raise ValueError("WP API URL must start with http:// or https://")
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


settings = get_settings()
