"""
MaintFlow Configuration Management

Uses Pydantic Settings for type-safe configuration from environment variables.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # =========================================================================
    # APPLICATION
    # =========================================================================
    APP_NAME: str = "MaintFlow"
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "info"
    VERSION: str = "0.1.0"

    # =========================================================================
    # API SERVER
    # =========================================================================
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: str = "http://localhost:3000"

    # =========================================================================
    # FLOW ENGINE
    # =========================================================================
    FLOW_ACTION_TIMEOUT_SECONDS: float = 10.0
    FLOW_ACTION_MAX_ATTEMPTS: int = 3
    FLOW_RETRY_BASE_DELAY_SECONDS: float = 0.5
    FLOW_RETRY_MAX_DELAY_SECONDS: float = 8.0
    # Default aggregate policy: keep running a rule's actions after a failure
    FLOW_STOP_ON_FAILURE: bool = False

    # =========================================================================
    # EXECUTION STATS
    # =========================================================================
    FLOW_STATS_WINDOW_DAYS: int = 30
    FLOW_RECENT_WINDOW_DAYS: int = 7

    # =========================================================================
    # SCHEDULER (time-based triggers)
    # =========================================================================
    FLOW_SCHEDULER_TICK_SECONDS: float = 60.0

    # =========================================================================
    # BUILT-IN HANDLERS
    # =========================================================================
    WEBHOOK_TIMEOUT_SECONDS: float = 5.0

    # =========================================================================
    # OBSERVABILITY
    # =========================================================================
    METRICS_ENABLED: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Singleton instance for easy import
settings = get_settings()
