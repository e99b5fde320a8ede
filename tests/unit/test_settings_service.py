"""
Unit tests for SettingsService.

Run: pytest tests/unit/test_settings_service.py -v
"""

import pytest
from unittest.mock import patch

from services.settings_service import SettingsService
from exceptions import DatabaseError, SettingNotFoundError


def setting(key: str, value: str) -> dict:
    return {"id": f"setting-{key}", "key": key, "value": value, "category": "reconciliation"}


class TestGetByKey:
    """Tests for SettingsService.get_by_key()"""

    def test_returns_setting(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("settings", [setting("tally_auto_correct", "true")])

        result = SettingsService().get_by_key("tally_auto_correct")

        assert result.value == "true"

    def test_missing_key_raises(self, mock_db, mock_supabase):
        with pytest.raises(SettingNotFoundError):
            SettingsService().get_by_key("tally_auto_correct")

    def test_read_failure_raises_database_error(self, mock_db, mock_supabase):
        mock_supabase.table("settings").fail_with(Exception("timeout"))

        with pytest.raises(DatabaseError):
            SettingsService().get_by_key("tally_auto_correct")


class TestIsAutoCorrectEnabled:
    """Tests for SettingsService.is_auto_correct_enabled()"""

    @pytest.mark.parametrize("value,expected", [
        ("true", True),
        ("TRUE", True),
        ("1", True),
        ("false", False),
        ("no", False),
    ])
    def test_reads_setting(self, mock_db, mock_supabase, value, expected):
        mock_supabase.set_table_data("settings", [setting("tally_auto_correct", value)])

        assert SettingsService().is_auto_correct_enabled() is expected

    @patch("services.settings_service.app_settings")
    def test_unseeded_falls_back_to_environment(self, mock_settings, mock_db, mock_supabase):
        mock_settings.reconciliation_auto_correct = False

        assert SettingsService().is_auto_correct_enabled() is False

    def test_unreadable_table_disables_corrections(self, mock_db, mock_supabase):
        mock_supabase.table("settings").fail_with(Exception("timeout"))

        assert SettingsService().is_auto_correct_enabled() is False


class TestGetAdminRecipient:
    """Tests for SettingsService.get_admin_recipient()"""

    def test_reads_setting(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("settings", [setting("tally_admin_chat_id", " -100777 ")])

        assert SettingsService().get_admin_recipient() == "-100777"

    @patch("services.settings_service.app_settings")
    def test_falls_back_to_alert_chat(self, mock_settings, mock_db, mock_supabase):
        mock_settings.alert_chat_id = "-100999"
        mock_supabase.set_table_data("settings", [setting("tally_admin_chat_id", "")])

        assert SettingsService().get_admin_recipient() == "-100999"

    @patch("services.settings_service.app_settings")
    def test_none_when_nothing_configured(self, mock_settings, mock_db, mock_supabase):
        mock_settings.alert_chat_id = None
        mock_supabase.table("settings").fail_with(Exception("timeout"))

        assert SettingsService().get_admin_recipient() is None
