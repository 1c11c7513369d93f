"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./ncc_monitor.db"
    storage_backend: str = "database"  # "database" or "memory"

    # Search (Google Custom Search is used when both values are set)
    google_api_key: str = ""
    google_search_engine_id: str = ""
    search_timeout_seconds: float = 10.0
    search_max_results: int = 10
    search_max_attempts: int = 3
    search_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Notifications
    notification_webhook_url: str = ""
    notification_webhook_type: str = "discord"  # discord, slack, generic
    notification_username: str = "NCC Monitor"

    # Scheduler
    auto_scan_enabled: bool = True
    auto_scan_interval_minutes: int = 360
    auto_scan_search_type: str = "all"

    # Per-serial scan lock
    scan_lock_backend: str = "local"  # "local" or "redis"
    redis_url: str = "redis://localhost:6379/0"
    scan_lock_ttl_seconds: int = 600
    scan_lock_wait_seconds: float = 30.0

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    app_host: str = "0.0.0.0"
    app_port: int = 8001

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
