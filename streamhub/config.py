"""
Configuration management for the StreamHub backend.
Uses pydantic-settings for environment variable loading.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "StreamHub"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    # Default allows all origins for development; set STREAMHUB_CORS_ORIGINS for production
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    rate_limit_per_minute: int = 100
    proxy_rate_limit_per_minute: int = 60

    # CORS proxy used to rewrite stream URLs (empty = streams are played directly)
    proxy_url: str = ""

    # Playlist sources
    default_playlist_url: str = "https://iptv-org.github.io/iptv/index.m3u"
    autoload_default_playlist: bool = False
    autoload_epg: bool = True
    fetch_timeout_seconds: float = 30.0

    # Database
    database_path: str = "data/streamhub.db"

    # Player defaults
    auto_play: bool = True
    muted: bool = False
    proxy_enabled: bool = True

    # HLS decoder
    hls_enable_worker: bool = True
    hls_low_latency_mode: bool = True
    hls_back_buffer_length: int = 90  # seconds
    hls_connect_timeout: float = 15.0
    hls_read_timeout: float = 30.0

    # Error recovery
    max_network_retries: int = 3
    max_media_recoveries: int = 2
    retry_backoff_seconds: float = 0.5

    # Browsing
    items_per_page: int = 120

    # Pydantic V2 configuration
    model_config = SettingsConfigDict(env_prefix="STREAMHUB_", env_file=".env")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
