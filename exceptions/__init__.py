"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    DatabaseError,

    # Tally-specific
    TallyNotFoundError,
    InvalidCheckTypeError,

    # Reconciliation reports
    ReconciliationReportNotFoundError,

    # Settings
    SettingNotFoundError,
)

__all__ = [
    "AppError",
    "NotFoundError",
    "ValidationError",
    "DatabaseError",
    "TallyNotFoundError",
    "InvalidCheckTypeError",
    "ReconciliationReportNotFoundError",
    "SettingNotFoundError",
]
