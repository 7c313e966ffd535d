"""
Configuration management for the car rental booking system.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "development"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Frontend URL (for CORS)
    frontend_url: str = "http://localhost:5173"

    # Booking policy
    max_advance_booking_days: int = 365
    price_tolerance: float = 0.01

    # Name given to users created implicitly by a search
    default_user_name: str = "Default User"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields like DATABASE_URL


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def is_production() -> bool:
    """Check if the service runs in production mode."""
    return get_settings().environment.lower() == "production"
