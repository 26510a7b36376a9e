"""
Configuration management for the adpilot dashboard API
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "adpilot Google Ads Dashboard"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: str = "*"  # comma-separated

    # Database
    database_url: str = "sqlite:///./adpilot.db"

    # Google Ads
    google_ads_client_id: str = ""
    google_ads_client_secret: str = ""
    google_ads_developer_token: str = ""
    google_ads_login_customer_id: Optional[str] = None
    google_ads_refresh_token: Optional[str] = None  # fallback when an account has none stored

    # Moz (Links API basic credential and JSON-RPC token)
    moz_api_token: Optional[str] = None

    # DataForSEO
    dataforseo_login: Optional[str] = None
    dataforseo_password: Optional[str] = None

    # LLM Configuration
    anthropic_api_key: Optional[str] = None
    llm_model: str = "claude-sonnet-4-20250514"
    enable_llm_insights: bool = True
    llm_max_tokens: int = 2000

    # Authentication
    initial_admin_email: str = ""
    initial_admin_password: str = ""
    session_duration_hours: int = 72

    # Scheduler
    enable_scheduler: bool = True
    metrics_refresh_interval_minutes: int = 15
    rules_check_interval_minutes: int = 60
    refresh_rate_limit_seconds: int = 10

    # Keyword data
    google_ads_monthly_quota: int = 10000
    keyword_cache_memory_ttl_seconds: int = 3600

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
