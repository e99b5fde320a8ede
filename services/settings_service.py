"""
Runtime flags for the reconciliation job.

Read from the pre-seeded `settings` table so operators can switch
auto-correct or the alert chat without a redeploy. Unseeded keys fall
back to the environment (config/settings.py).
"""

from typing import Optional
import structlog

from config import get_supabase_client, settings as app_settings
from models.settings import (
    SettingResponse,
    AUTO_CORRECT_KEY,
    ADMIN_RECIPIENT_KEY,
)
from exceptions import DatabaseError, SettingNotFoundError

logger = structlog.get_logger(__name__)


TRUE_VALUES = {"true", "1", "yes", "on", "t"}


class SettingsService:
    """Read-only access to the settings table."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "settings"

    def get_by_key(self, key: str) -> SettingResponse:
        """
        Raises:
            SettingNotFoundError: If the key is not seeded
            DatabaseError: If the table cannot be read
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("key", key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("setting_read_failed", key=key, error=str(e))
            raise DatabaseError("select", str(e), {"key": key})

        if not result.data:
            raise SettingNotFoundError(key)
        return SettingResponse(**result.data[0])

    def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        try:
            return self.get_by_key(key).value
        except SettingNotFoundError:
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_value(key)
        if value is None:
            return default
        return value.strip().lower() in TRUE_VALUES

    # ===================
    # RECONCILIATION FLAGS
    # ===================

    def is_auto_correct_enabled(self) -> bool:
        """
        Whether this run may write info/warning corrections.

        If the table cannot be read the run goes report-only.
        """
        try:
            return self.get_bool(AUTO_CORRECT_KEY, default=app_settings.reconciliation_auto_correct)
        except DatabaseError as e:
            logger.warning("auto_correct_flag_unreadable", error=e.message)
            return False

    def get_admin_recipient(self) -> Optional[str]:
        """Chat ID for reconciliation alerts, or None if none is configured."""
        try:
            value = self.get_value(ADMIN_RECIPIENT_KEY)
        except DatabaseError as e:
            logger.warning("admin_recipient_unreadable", error=e.message)
            value = None
        return (value or "").strip() or app_settings.alert_chat_id


_settings_service: Optional[SettingsService] = None


def get_settings_service() -> SettingsService:
    """Get or create SettingsService instance."""
    global _settings_service
    if _settings_service is None:
        _settings_service = SettingsService()
    return _settings_service
