"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, to_decimal
from models.tally import (
    TallyStatus,
    AllocationStatus,
    TallySheet,
    TallyAllocation,
    INACTIVE_TALLY_STATUSES,
    INITIAL_TRANSACTION_TYPE,
)
from models.reconciliation import (
    CheckType,
    ALL_CHECKS,
    Severity,
    DiscrepancyType,
    LotCategory,
    ExecutionStage,
    FieldCorrection,
    BalanceMismatch,
    NegativeAllocations,
    OverAllocation,
    StatusMismatch,
    OrphanedAllocations,
    Discrepancy,
    CheckResult,
    CorrectionOutcome,
    LotReconciliation,
    ExecutionError,
    ReconciliationReport,
    ReconciliationReportSummary,
    ReconciliationReportListResponse,
    ReconciliationRunRequest,
    RunContext,
)
from models.settings import SettingResponse

__all__ = [
    # Base
    "BaseSchema",
    "to_decimal",
    # Tally
    "TallyStatus",
    "AllocationStatus",
    "TallySheet",
    "TallyAllocation",
    "INACTIVE_TALLY_STATUSES",
    "INITIAL_TRANSACTION_TYPE",
    # Reconciliation
    "CheckType",
    "ALL_CHECKS",
    "Severity",
    "DiscrepancyType",
    "LotCategory",
    "ExecutionStage",
    "FieldCorrection",
    "BalanceMismatch",
    "NegativeAllocations",
    "OverAllocation",
    "StatusMismatch",
    "OrphanedAllocations",
    "Discrepancy",
    "CheckResult",
    "CorrectionOutcome",
    "LotReconciliation",
    "ExecutionError",
    "ReconciliationReport",
    "ReconciliationReportSummary",
    "ReconciliationReportListResponse",
    "ReconciliationRunRequest",
    "RunContext",
    # Settings
    "SettingResponse",
]
