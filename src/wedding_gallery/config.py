"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

LISTING_STRATEGIES = {"native", "relist"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_anon_key: str
    supabase_service_key: str
    session_secret: str
    app_title: str = "Our Wedding"
    storage_bucket: str = "wedding"
    photos_path: str = "photos"
    photos_per_page: int = 12
    max_file_size_mb: int = 50
    validate_uploads: bool = True
    allow_new_guests: bool = True
    listing_strategy: str = "native"
    signed_url_ttl_seconds: int = 3600
    visitor_ttl_seconds: int = 6 * 60 * 60
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_listing_strategy(raw: str | None) -> str:
    """Normalize the configured listing strategy, defaulting to native paging."""
    if raw is None:
        return "native"
    cleaned = raw.strip().lower()
    if not cleaned:
        return "native"
    if cleaned not in LISTING_STRATEGIES:
        raise ValueError(f"Unknown listing strategy: {raw}")
    return cleaned
