"""
Application errors.

The ledger store and settings service raise these; routes and the CLI
turn them into responses. Inside a reconciliation run they never escape
a lot: check, lot and correction failures are kept as data on the
results instead.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base for every error with an HTTP mapping.

    Attributes:
        code: Machine-readable code, e.g. "TALLY_NOT_FOUND"
        message: Human-readable message
        status_code: HTTP status returned by the API
        details: Extra context for the response body and logs
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Row not found (404)."""

    def __init__(self, resource: str, identifier: str, code: Optional[str] = None):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Rejected input (422)."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", details: Optional[dict] = None):
        super().__init__(code=code, message=message, status_code=422, details=details)


class DatabaseError(AppError):
    """A Supabase read or write failed (500)."""

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# TALLY ERRORS
# ===================

class TallyNotFoundError(NotFoundError):
    def __init__(self, tally_id: str):
        super().__init__("Tally sheet", tally_id, code="TALLY_NOT_FOUND")


class InvalidCheckTypeError(ValidationError):
    """Requested check name is not one of CheckType."""

    def __init__(self, check_type: str, valid: list[str]):
        super().__init__(
            code="RECONCILIATION_INVALID_CHECK",
            message=f"Unknown reconciliation check: {check_type}",
            details={"provided": check_type, "valid": valid}
        )


# ===================
# REPORT / SETTINGS ERRORS
# ===================

class ReconciliationReportNotFoundError(NotFoundError):
    def __init__(self, report_id: str):
        super().__init__("Reconciliation report", report_id, code="RECONCILIATION_REPORT_NOT_FOUND")


class SettingNotFoundError(NotFoundError):
    def __init__(self, key: str):
        super().__init__("Setting", key, code="SETTING_NOT_FOUND")
