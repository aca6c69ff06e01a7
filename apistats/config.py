"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the request statistics service."""

    app_name: str = "API Stats"
    app_version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    stats_backend: str = "auto"
    redis_url: str | None = None
    redis_socket_timeout_seconds: float = 2.0
    stats_key_prefix: str = "api_requests"
    stats_expiry_days: int = 31
    stats_path_prefix: str = "/api/"
    stats_report_days: int = 30
    stats_report_limit: int = 10
    admin_api_token: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings so env parsing only happens once."""

    return Settings()
