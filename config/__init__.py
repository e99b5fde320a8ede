"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Cached settings loader
    get_supabase_client: Shared Supabase client
    check_connection: Ledger database health check
    configure_logging: structlog setup for API and scripts
"""

from config.settings import settings, get_settings, Settings
from config.database import (
    get_supabase_client,
    check_connection,
    SupabaseConnectionError,
)
from config.logging import configure_logging

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "get_supabase_client",
    "check_connection",
    "SupabaseConnectionError",
    "configure_logging",
]
