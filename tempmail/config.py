"""
Application configuration loaded from environment variables.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Mail.tm provider
    mailtm_base_url: str = "https://api.mail.tm"
    mailtm_timeout_seconds: float = 10.0

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:5173"

    # Session store
    session_idle_hours: int = 24
    session_sweep_interval_minutes: int = 60

    # Static bearer token for /api/admin/stats (empty disables it)
    admin_token: str = ""

    # Per-IP rate limits: max requests per window
    rate_limit_enabled: bool = True
    general_rate_limit: int = 100
    general_rate_window_seconds: int = 15 * 60
    account_rate_limit: int = 5
    account_rate_window_seconds: int = 60 * 60
    message_rate_limit: int = 30
    message_rate_window_seconds: int = 60

    # Debug mode
    debug: bool = False

    @property
    def session_idle_seconds(self) -> float:
        return self.session_idle_hours * 3600.0

    @property
    def session_sweep_interval_seconds(self) -> float:
        return self.session_sweep_interval_minutes * 60.0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
