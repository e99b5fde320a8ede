"""
Alert service for reconciliation runs.

Decides whether a finished run needs a person, formats the summary and
sends it through Telegram. Sending is best effort: a failed alert is
logged and never fails the run.
"""

from typing import Optional
import structlog

from models.reconciliation import ReconciliationReport, Severity
from integrations.telegram import send_alert, TelegramError

logger = structlog.get_logger(__name__)


def should_alert(report: ReconciliationReport) -> bool:
    """Alert iff the run found ERROR or CRITICAL discrepancies."""
    return report.has_blocking_issues


def format_reconciliation_alert(report: ReconciliationReport) -> tuple[str, str]:
    """
    Build the alert subject and body.

    Only counters go out; the per-lot detail list stays in the
    persisted report.
    """
    by_severity = report.discrepancies_by_severity

    subject = (
        f"[LumberSuite] Tally Reconciliation Alert - "
        f"{report.lots_with_discrepancies} Issues Found"
    )

    type_lines = [
        f"• {getattr(kind, 'value', kind)}: {count}"
        for kind, count in sorted(
            report.discrepancies_by_type.items(),
            key=lambda item: getattr(item[0], "value", item[0]),
        )
    ]

    lines = [
        "Reconciliation completed with issues requiring attention.",
        "",
        "Summary:",
        f"- Total Tallies Checked: {report.total_lots}",
        f"- Clean Tallies: {report.clean_lots}",
        f"- Tallies with Issues: {report.lots_with_discrepancies}",
        f"- Critical Issues: {by_severity.get(Severity.CRITICAL, 0)}",
        f"- Errors: {by_severity.get(Severity.ERROR, 0)}",
        f"- Warnings: {by_severity.get(Severity.WARNING, 0)}",
        f"- Info: {by_severity.get(Severity.INFO, 0)}",
        f"- Auto-Corrections Applied: {report.corrections_applied}",
        "",
        "Issues by Type:",
        *(type_lines or ["None"]),
    ]

    if report.lots_with_errors or report.execution_errors:
        lines += [
            "",
            f"Tallies not processed: {report.lots_with_errors}",
            f"Execution errors: {len(report.execution_errors)}",
        ]

    ref = report.id or report.run_id
    lines += ["", f"Review reconciliation report {ref} for details."]

    return subject, "\n".join(lines)


class AlertService:
    """
    Reconciliation alert delivery.

    Recipient lookup is left to the caller (SettingsService) so this
    class has no database dependency.
    """

    def send_reconciliation_alert(
        self,
        report: ReconciliationReport,
        recipient: Optional[str],
    ) -> bool:
        """
        Send the run summary to the admin chat.

        Returns:
            True if an alert went out
        """
        if not recipient:
            logger.warning("reconciliation_alert_skipped", reason="no_recipient", run_id=report.run_id)
            return False

        subject, body = format_reconciliation_alert(report)

        try:
            sent = send_alert(recipient, subject, body)
        except TelegramError as e:
            logger.error("reconciliation_alert_failed", run_id=report.run_id, error=str(e))
            return False
        except Exception as e:
            logger.error(
                "reconciliation_alert_failed",
                run_id=report.run_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if sent:
            logger.info("reconciliation_alert_sent", run_id=report.run_id, recipient=recipient)
        return sent


# Singleton instance
_alert_service: Optional[AlertService] = None


def get_alert_service() -> AlertService:
    """Get or create AlertService instance."""
    global _alert_service
    if _alert_service is None:
        _alert_service = AlertService()
    return _alert_service
