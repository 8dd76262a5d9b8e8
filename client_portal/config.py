"""
Portal configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Portal settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    
    # Collaborator
    backend: str = "supabase"  # supabase, memory
    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str = ""
    feedback_table: str = "intelligence"
    
    # Sync policy
    sync_max_attempts: int = 3
    sync_backoff_base_seconds: float = 0.5
    sync_backoff_max_seconds: float = 8.0
    resubscribe_max_attempts: int = 3
    
    # Transport (adapter only; the sync core imposes no timeouts)
    realtime_heartbeat_seconds: float = 25.0
    http_timeout_seconds: float = 30.0
    token_refresh_margin_seconds: float = 60.0  # Refresh this long before the access token expires
    
    # Account
    default_subscription_level: str = "Premium"

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    project_name: str = "Client Portal"
    version: str = "1.0.0"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
