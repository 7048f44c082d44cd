"""
GraftWatch - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import Optional, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Document store (None keeps everything in memory)
    database_url: Optional[str] = None
    db_echo: bool = False
    store_poll_interval_seconds: float = 0.0

    # Firebase (credentials select the Firestore store and token sign-in)
    firebase_credentials_path: Optional[str] = None
    firebase_project_id: Optional[str] = None

    # Reports
    nearby_radius_km: float = 50.0
    max_image_bytes: int = 500_000

    # Reverse geocoding (Nominatim)
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    geocoding_timeout_seconds: float = 10.0
    geocoding_language: str = "bn"

    # Map
    default_map_center: Tuple[float, float] = (23.8103, 90.4125)
    default_map_zoom: int = 7

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
