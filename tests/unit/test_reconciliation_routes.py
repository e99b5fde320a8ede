"""
Unit tests for the reconciliation API routes.

Run: pytest tests/unit/test_reconciliation_routes.py -v
"""

from datetime import datetime, timezone
from unittest.mock import patch, MagicMock

from models.reconciliation import (
    ALL_CHECKS,
    CheckType,
    ReconciliationReport,
    ReconciliationReportSummary,
    RunContext,
)
from exceptions import DatabaseError, ReconciliationReportNotFoundError


def make_report(**overrides) -> ReconciliationReport:
    data = {
        "id": "report-1",
        "run_id": "run-1",
        "execution_date": datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc),
        "total_lots": 4,
        "clean_lots": 3,
        "lots_with_discrepancies": 1,
    }
    data.update(overrides)
    return ReconciliationReport(**data)


class TestRunEndpoint:
    """Tests for POST /api/reconciliation/run"""

    @patch("routes.reconciliation.get_reconciliation_service")
    def test_runs_with_defaults(self, mock_get_service, test_client):
        service = MagicMock()
        service.build_context.return_value = RunContext()
        service.run.return_value = make_report()
        mock_get_service.return_value = service

        response = test_client.post("/api/reconciliation/run")

        assert response.status_code == 200
        assert response.json()["id"] == "report-1"
        service.build_context.assert_called_once_with(checks=None, auto_correct=None, max_lots=None)

    @patch("routes.reconciliation.get_reconciliation_service")
    def test_passes_overrides(self, mock_get_service, test_client):
        service = MagicMock()
        service.run.return_value = make_report()
        mock_get_service.return_value = service

        response = test_client.post(
            "/api/reconciliation/run",
            json={"checks": ["status_validation"], "auto_correct": False, "max_lots": 50},
        )

        assert response.status_code == 200
        service.build_context.assert_called_once_with(
            checks=[CheckType.STATUS_VALIDATION], auto_correct=False, max_lots=50
        )

    def test_unknown_check_rejected(self, test_client):
        response = test_client.post("/api/reconciliation/run", json={"checks": ["moisture"]})

        assert response.status_code == 422

    @patch("routes.reconciliation.get_reconciliation_service")
    def test_app_error_mapped(self, mock_get_service, test_client):
        mock_get_service.side_effect = DatabaseError("select", "connection refused")

        response = test_client.post("/api/reconciliation/run")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "DATABASE_ERROR"


class TestReportEndpoints:
    """Tests for GET /api/reconciliation/reports"""

    @patch("routes.reconciliation.get_ledger_store")
    def test_list_reports(self, mock_get_store, test_client):
        store = MagicMock()
        store.get_reports.return_value = [
            ReconciliationReportSummary(**make_report().model_dump(include={
                "id", "run_id", "execution_date", "total_lots",
                "clean_lots", "lots_with_discrepancies", "corrections_applied",
            }))
        ]
        mock_get_store.return_value = store

        response = test_client.get("/api/reconciliation/reports?limit=5")

        assert response.status_code == 200
        assert response.json()["total"] == 1
        store.get_reports.assert_called_once_with(limit=5)

    @patch("routes.reconciliation.get_ledger_store")
    def test_get_report(self, mock_get_store, test_client):
        store = MagicMock()
        store.get_report.return_value = make_report(checks_run=list(ALL_CHECKS))
        mock_get_store.return_value = store

        response = test_client.get("/api/reconciliation/reports/report-1")

        assert response.status_code == 200
        assert response.json()["checks_run"] == [c.value for c in ALL_CHECKS]

    @patch("routes.reconciliation.get_ledger_store")
    def test_missing_report_is_404(self, mock_get_store, test_client):
        store = MagicMock()
        store.get_report.side_effect = ReconciliationReportNotFoundError("nope")
        mock_get_store.return_value = store

        response = test_client.get("/api/reconciliation/reports/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RECONCILIATION_REPORT_NOT_FOUND"
