"""
Environment configuration.

Values come from the process environment or a .env file. Flags that
operators change between runs (auto-correct, alert chat) can also be
overridden in the database `settings` table; see
services/settings_service.py.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Validated once on first access; a bad value fails startup."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_key: str = Field(..., description="Anon key, used when no service key is set")
    supabase_service_key: Optional[str] = Field(
        None,
        description="Service role key; tally corrections and report inserts need it under RLS"
    )

    # ===================
    # TELEGRAM
    # ===================
    telegram_bot_token: Optional[str] = Field(None, description="Bot token for alert delivery")
    telegram_chat_id: Optional[str] = Field(None, description="Fallback chat for alerts")

    # ===================
    # RECONCILIATION
    # ===================
    reconciliation_auto_correct: bool = Field(
        default=True,
        description="Write info/warning corrections when the settings table has no value"
    )
    reconciliation_admin_chat_id: Optional[str] = Field(
        None,
        description="Chat that receives reconciliation alerts"
    )
    reconciliation_page_size: int = Field(
        default=500,
        ge=1,
        le=1000,
        description="Tally sheets per enumeration request"
    )
    reconciliation_max_lots: Optional[int] = Field(
        None,
        ge=1,
        description="Stop a run after this many tally sheets"
    )
    reconciliation_max_workers: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Tally sheets processed in parallel"
    )
    reconciliation_timeout_seconds: Optional[float] = Field(
        None,
        gt=0,
        description="Whole-run deadline; lots still pending are reported as errored"
    )

    # ===================
    # RUNTIME
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$"
    )
    debug: bool = Field(default=True, description="Expose /docs and error details")
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$"
    )
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000, ge=1000, le=65535)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def telegram_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.alert_chat_id)

    @property
    def alert_chat_id(self) -> Optional[str]:
        """Chat for reconciliation alerts when the database names none."""
        return self.reconciliation_admin_chat_id or self.telegram_chat_id


@lru_cache()
def get_settings() -> Settings:
    """
    Load settings once per process.

    Tests that change the environment call get_settings.cache_clear().
    """
    return Settings()


settings = get_settings()
