"""ADLENS: Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Google Ads API ──
    google_ads_developer_token: str = ""
    google_ads_login_customer_id: Optional[str] = None
    google_ads_api_version: str = "v19"
    google_ads_base_url: str = "https://googleads.googleapis.com"
    google_ads_timeout_seconds: float = 30.0

    # ── Google OAuth (token refresh) ──
    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_url: str = "https://oauth2.googleapis.com/token"
    token_refresh_buffer_seconds: int = 300  # refresh 5 min before expiry

    # ── Database ──
    database_url: str = ""

    # ── AI Providers ──
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    sarvam_api_key: Optional[str] = None
    default_ai_provider: str = "openai"  # sarvam | openai | claude
    summarization_timeout_seconds: float = 300.0

    # ── Reports ──
    weekly_report_limit: int = 100
    premium_weekly_report_limit: int = 1000
    report_cache_ttl_hours: int = 24
    fanout_transport: str = "inprocess"  # inprocess | http
    internal_base_url: str = "http://localhost:8000"

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    cache_cleanup_hour: int = 3  # Daily cache sweep at 3 AM

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/adlens.db"
        return "sqlite:///./adlens.db"

    @property
    def google_ads_api_root(self) -> str:
        return f"{self.google_ads_base_url}/{self.google_ads_api_version}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
