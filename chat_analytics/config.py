"""
Application configuration using Pydantic Settings
"""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from chat_analytics.services.policy import ResponsePolicy, get_policy


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Periskope API
    periskope_api_key: str = ""
    periskope_phone: str = ""
    periskope_base_url: str = "https://api.periskope.app/v1"
    request_timeout_seconds: float = 30.0

    # Pagination and fetching
    page_size: int = 1000
    max_pages: int = 15
    message_page_limit: int = 2000
    fetch_concurrency: int = 2
    retry_max_attempts: int = 3
    retry_backoff_seconds: float = 1.0

    # Classification
    # JSON list in the environment, e.g. SUPPORT_PHONES='["911852701495"]'
    support_phones: List[str] = []
    response_policy: str = "relaxed"
    activity_window_days: Optional[int] = None
    timezone: str = "UTC"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_dir: Optional[str] = None

    # Application
    debug: bool = False

    def build_policy(self, name: Optional[str] = None) -> ResponsePolicy:
        """Response policy for the named preset (defaults to the configured one)"""
        policy = get_policy(name or self.response_policy)
        if self.activity_window_days is not None:
            policy = policy.with_activity_window(self.activity_window_days)
        return policy


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
