"""
Business logic services.

Each service handles one step of the reconciliation run.
"""

from services.ledger_store import LedgerStore, get_ledger_store
from services.settings_service import SettingsService, get_settings_service
from services.alert_service import AlertService, get_alert_service
from services.reconciliation_service import (
    TallyReconciliationService,
    get_reconciliation_service,
)

__all__ = [
    "LedgerStore",
    "get_ledger_store",
    "SettingsService",
    "get_settings_service",
    "AlertService",
    "get_alert_service",
    "TallyReconciliationService",
    "get_reconciliation_service",
]
