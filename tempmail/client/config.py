"""
Client configuration loaded from TEMPMAIL_* environment variables.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class ClientSettings(BaseSettings):
    """Settings for TempMailAPI, the request cache and inbox polling."""

    model_config = SettingsConfigDict(env_prefix="TEMPMAIL_", env_file=".env", extra="ignore")

    api_base_url: str = "http://localhost:8000/api"
    timeout_seconds: float = 30.0
    cache_ttl_seconds: float = 5.0

    # Inbox polling
    poll_interval_seconds: float = 15.0
    min_poll_interval_seconds: float = 5.0
    max_poll_interval_seconds: float = 60.0
    max_retries: int = 3


@lru_cache()
def get_client_settings() -> ClientSettings:
    """Get cached client settings instance."""
    return ClientSettings()
