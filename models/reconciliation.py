"""
Reconciliation schemas.

Types flowing through one reconciliation run:
- CheckResult: verdict of one check on one tally sheet
- Discrepancy: tagged union, one variant per discrepancy type
- CorrectionOutcome: result of one automatic field write
- LotReconciliation: everything found and fixed for one tally sheet
- ReconciliationReport: the persisted, append-only run summary
- RunContext: configuration and accumulator for a single run
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

import structlog
from pydantic import Field, model_validator

from config.reconciliation import (
    BALANCE_TOLERANCE_BF,
    BALANCE_ERROR_RATIO,
    REMAINING_BF_FIELD,
    REPORT_TYPE,
)
from models.base import BaseSchema, to_decimal

# Shared by every run; each RunContext binds its run_id
logger = structlog.get_logger("reconciliation")


# ===================
# ENUMS
# ===================

class CheckType(str, Enum):
    """Independent consistency checks run against every tally sheet."""
    BALANCE_VERIFICATION = "balance_verification"
    ALLOCATION_INTEGRITY = "allocation_integrity"
    STATUS_VALIDATION = "status_validation"
    ORPHAN_DETECTION = "orphan_detection"


ALL_CHECKS = tuple(CheckType)


class Severity(str, Enum):
    """Discrepancy severity, ordered INFO < WARNING < ERROR < CRITICAL."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
    Severity.CRITICAL: 3,
}


class DiscrepancyType(str, Enum):
    """Kinds of ledger drift the checks can detect."""
    BALANCE_MISMATCH = "balance_mismatch"
    NEGATIVE_ALLOCATIONS = "negative_allocations"
    OVER_ALLOCATION = "over_allocation"
    STATUS_MISMATCH = "status_mismatch"
    ORPHANED_ALLOCATIONS = "orphaned_allocations"


class LotCategory(str, Enum):
    """Aggregation bucket of a lot result."""
    CLEAN = "clean"
    DISCREPANCIES = "discrepancies"
    ERRORED = "errored"


class ExecutionStage(str, Enum):
    """Run phase an execution error was raised in."""
    INPUT = "input"
    MAP = "map"
    REDUCE = "reduce"
    SUMMARIZE = "summarize"


# ===================
# DISCREPANCIES
# ===================

FieldValue = Union[str, Decimal]

# Columns whose values are quantities; every other correctable column is text
NUMERIC_FIELDS = frozenset({REMAINING_BF_FIELD})


def typed_field_values(data: Any, value_keys: tuple[str, ...]) -> Any:
    """
    Read the values of a numeric column back as Decimal.

    Reports are stored as JSON, where a Decimal is a string; the column
    name decides which type the value is.
    """
    if not isinstance(data, dict) or data.get("field") not in NUMERIC_FIELDS:
        return data
    return {
        **data,
        **{key: to_decimal(data[key]) for key in value_keys if data.get(key) is not None},
    }


class FieldCorrection(BaseSchema):
    """Single-field fix proposed for a tally sheet."""

    field: str = Field(..., description="Tally sheet column to write")
    current_value: Optional[FieldValue] = Field(None, description="Value recorded now")
    correct_value: FieldValue = Field(..., description="Value derived from allocations")

    @model_validator(mode="before")
    @classmethod
    def numeric_values(cls, data):
        return typed_field_values(data, ("current_value", "correct_value"))


class DiscrepancyBase(BaseSchema):
    """Fields shared by every discrepancy variant."""

    severity: Severity
    message: str
    tally_id: str


class BalanceMismatch(DiscrepancyBase):
    """Recorded remaining BF disagrees with original minus consumed."""

    type: Literal["balance_mismatch"] = "balance_mismatch"
    recorded_bf: Decimal
    calculated_bf: Decimal
    variance: Decimal
    correction: Optional[FieldCorrection] = None


class NegativeAllocations(DiscrepancyBase):
    """Allocation records with negative board feet. Manual fix only."""

    type: Literal["negative_allocations"] = "negative_allocations"
    negative_count: int


class OverAllocation(DiscrepancyBase):
    """More pieces allocated or consumed than were tallied. Manual fix only."""

    type: Literal["over_allocation"] = "over_allocation"
    allocated_pieces: Decimal
    original_pieces: Decimal
    over_allocated: Decimal


class StatusMismatch(DiscrepancyBase):
    """Status disagrees with the status derived from the balance."""

    type: Literal["status_mismatch"] = "status_mismatch"
    current_status: str
    expected_status: str
    correction: FieldCorrection


class OrphanedAllocations(DiscrepancyBase):
    """Allocation records with no traceable source transaction."""

    type: Literal["orphaned_allocations"] = "orphaned_allocations"
    orphan_count: int


Discrepancy = Annotated[
    Union[
        BalanceMismatch,
        NegativeAllocations,
        OverAllocation,
        StatusMismatch,
        OrphanedAllocations,
    ],
    Field(discriminator="type"),
]


# ===================
# CHECKS AND CORRECTIONS
# ===================

class CheckResult(BaseSchema):
    """Verdict of one check on one tally sheet."""

    type: CheckType
    passed: bool = True
    details: dict[str, Any] = Field(default_factory=dict)
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    error: Optional[str] = None


class CorrectionOutcome(BaseSchema):
    """Result of one automatic correction write."""

    type: DiscrepancyType
    field: str
    old_value: Optional[FieldValue] = None
    new_value: Optional[FieldValue] = None
    success: bool
    error: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def numeric_values(cls, data):
        return typed_field_values(data, ("old_value", "new_value"))


class LotReconciliation(BaseSchema):
    """Per-lot output of the unit processor."""

    tally_id: str
    tally_number: Optional[str] = None
    checks: list[CheckResult] = Field(default_factory=list)
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    corrections: list[CorrectionOutcome] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def category(self) -> LotCategory:
        if self.error:
            return LotCategory.ERRORED
        if self.discrepancies:
            return LotCategory.DISCREPANCIES
        return LotCategory.CLEAN

    @property
    def check_errors(self) -> int:
        return sum(1 for check in self.checks if check.error)


# ===================
# REPORT
# ===================

class ExecutionError(BaseSchema):
    """Batch-level failure surfaced in the report instead of raised."""

    stage: ExecutionStage
    key: Optional[str] = Field(None, description="Tally ID for per-lot failures")
    message: str


def empty_severity_counts() -> dict[Severity, int]:
    return {severity: 0 for severity in Severity}


class ReconciliationReport(BaseSchema):
    """
    Summary of one reconciliation run.

    Persisted once at the end of the run and never updated.
    """

    id: Optional[str] = Field(None, description="Report ID, set once persisted")
    report_type: str = REPORT_TYPE
    run_id: Optional[str] = None
    execution_date: datetime
    total_lots: int = 0
    clean_lots: int = 0
    lots_with_discrepancies: int = 0
    lots_with_errors: int = 0
    discrepancies_by_severity: dict[Severity, int] = Field(default_factory=empty_severity_counts)
    discrepancies_by_type: dict[DiscrepancyType, int] = Field(default_factory=dict)
    corrections_applied: int = 0
    corrections_failed: int = 0
    check_errors: int = 0
    auto_correct_enabled: bool = False
    checks_run: list[CheckType] = Field(default_factory=list)
    details: list[Discrepancy] = Field(default_factory=list)
    execution_errors: list[ExecutionError] = Field(default_factory=list)

    @property
    def has_blocking_issues(self) -> bool:
        """Error or critical discrepancies that need a person."""
        return (
            self.discrepancies_by_severity.get(Severity.ERROR, 0) > 0
            or self.discrepancies_by_severity.get(Severity.CRITICAL, 0) > 0
        )


class ReconciliationReportSummary(BaseSchema):
    """Report row without the per-lot detail list."""

    id: str
    run_id: Optional[str] = None
    execution_date: datetime
    total_lots: int
    clean_lots: int
    lots_with_discrepancies: int
    corrections_applied: int


class ReconciliationReportListResponse(BaseSchema):
    """List of reconciliation reports."""

    data: list[ReconciliationReportSummary]
    total: int


class ReconciliationRunRequest(BaseSchema):
    """Overrides for an on-demand run."""

    checks: Optional[list[CheckType]] = Field(None, description="Checks to run (all if omitted)")
    auto_correct: Optional[bool] = Field(None, description="Override the auto-correct flag")
    max_lots: Optional[int] = Field(None, ge=1, description="Cap on tally sheets examined")


# ===================
# RUN CONTEXT
# ===================

@dataclass
class RunContext:
    """
    Configuration and accumulator for one reconciliation run.

    Passed explicitly to every step; nothing about a run is kept in
    module state. Results and execution errors are appended by the
    coordinating thread. Workers touch only the correction ledger, and
    only under write_lock: once cancel() returns, no correction write is
    in flight and none will start.
    """

    auto_correct: bool = True
    checks: tuple[CheckType, ...] = ALL_CHECKS
    balance_tolerance: Decimal = BALANCE_TOLERANCE_BF
    balance_error_ratio: Decimal = BALANCE_ERROR_RATIO
    page_size: int = 500
    max_lots: Optional[int] = None
    max_workers: int = 8
    timeout_seconds: Optional[float] = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    results: list[LotReconciliation] = field(default_factory=list)
    execution_errors: list[ExecutionError] = field(default_factory=list)
    cancelled: threading.Event = field(default_factory=threading.Event, repr=False)
    write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    written: dict[str, list[CorrectionOutcome]] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.log = logger.bind(run_id=self.run_id)

    def cancel(self) -> None:
        """Stop correction writes, waiting out one already in flight."""
        with self.write_lock:
            self.cancelled.set()

    def record_write(self, tally_id: str, outcome: CorrectionOutcome) -> None:
        """Note an attempted write. Caller holds write_lock."""
        self.written.setdefault(tally_id, []).append(outcome)

    def writes_for(self, tally_id: str) -> list[CorrectionOutcome]:
        with self.write_lock:
            return list(self.written.get(tally_id, []))

    def record_error(
        self,
        stage: ExecutionStage,
        message: str,
        key: Optional[str] = None,
    ) -> ExecutionError:
        """Keep a batch-level failure for the report."""
        error = ExecutionError(stage=stage, key=key, message=message)
        self.execution_errors.append(error)
        return error
