"""
Tally Reconciliation Service - batch audit of the tally ledger.

A run is a scatter-gather over every live tally sheet:

1. Enumerate   - stream lots from the ledger store (void/closed excluded)
2. Map         - process_lot() per lot on a thread pool: run the checks,
                 apply safe corrections, never raise
3. Reduce      - aggregate() lot results into clean / discrepancies /
                 errored buckets (pure, order independent)
4. Summarize   - build_report(), persist it, alert on ERROR/CRITICAL

Failures are contained as close to their source as possible: a failed
check marks that check, a failed lot marks that lot, a failed write
marks that correction, and batch-level failures become execution errors
on the report. A run always ends with a report.
"""

import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Union

from config import settings
from config.reconciliation import REMAINING_BF_FIELD, STATUS_FIELD
from models.base import to_decimal
from models.tally import TallySheet, TallyStatus
from models.reconciliation import (
    ALL_CHECKS,
    CheckType,
    CorrectionOutcome,
    Discrepancy,
    DiscrepancyType,
    ExecutionStage,
    LotCategory,
    LotReconciliation,
    ReconciliationReport,
    RunContext,
    Severity,
    StatusMismatch,
    empty_severity_counts,
)
from services.ledger_store import LedgerStore, get_ledger_store
from services.reconciliation_checks import (
    derive_expected_status,
    run_check,
    status_mismatch,
)
from services.correction_service import apply_corrections
from services.settings_service import SettingsService, get_settings_service
from services.alert_service import AlertService, get_alert_service, should_alert
from exceptions import InvalidCheckTypeError

TIMEOUT_MESSAGE = "Reconciliation timed out before this tally was processed"
PARTIAL_TIMEOUT_MESSAGE = (
    "Reconciliation timed out while this tally was processed; "
    "{count} correction(s) had already been attempted"
)


# ===================
# CHECK SELECTION
# ===================

def parse_checks(values: Optional[Iterable[Union[str, CheckType]]]) -> tuple[CheckType, ...]:
    """
    Resolve requested check names.

    None, an empty list or "all" selects every check. Order follows
    CheckType so results are comparable between runs.

    Raises:
        InvalidCheckTypeError: For an unknown check name
    """
    if not values:
        return ALL_CHECKS

    selected = set()
    for value in values:
        name = getattr(value, "value", value)
        if name == "all":
            return ALL_CHECKS
        try:
            selected.add(CheckType(name))
        except ValueError:
            raise InvalidCheckTypeError(str(name), [c.value for c in CheckType])

    return tuple(check for check in CheckType if check in selected)


# ===================
# UNIT PROCESSOR
# ===================

def settle_status(
    lot: TallySheet,
    corrections: Sequence[CorrectionOutcome],
    ctx: RunContext,
) -> Optional[StatusMismatch]:
    """
    Re-derive status after a remaining BF correction.

    The status check saw the balance as recorded before this run. The
    settled status comes from the status the lot started the run with
    plus the corrected balance, and is compared with the status stored
    now, which a status correction in this run may already have changed.
    """
    if CheckType.STATUS_VALIDATION not in ctx.checks:
        return None

    applied = {c.field: c.new_value for c in corrections if c.success}
    if REMAINING_BF_FIELD not in applied:
        return None

    stored = TallyStatus(applied.get(STATUS_FIELD, lot.status))
    expected = derive_expected_status(
        lot.status,
        to_decimal(applied[REMAINING_BF_FIELD]),
        lot.original_bf,
    )
    if expected == stored:
        return None
    return status_mismatch(lot.id, stored, expected)


def process_lot(lot: TallySheet, store: LedgerStore, ctx: RunContext) -> LotReconciliation:
    """
    Reconcile one tally sheet.

    Runs the selected checks, then (if enabled) applies corrections
    sequentially once every check has reported. Never raises: any
    unexpected failure is captured on the result.
    """
    result = LotReconciliation(tally_id=lot.id, tally_number=lot.tally_number)
    ctx.log.debug("reconciling_tally", tally_id=lot.id)

    try:
        for check_type in ctx.checks:
            check = run_check(check_type, lot, store, ctx)
            result.checks.append(check)
            result.discrepancies.extend(check.discrepancies)

        if ctx.auto_correct and result.discrepancies:
            result.corrections.extend(
                apply_corrections(lot.id, result.discrepancies, store, ctx)
            )

            follow_up = settle_status(lot, result.corrections, ctx)
            if follow_up is not None:
                result.discrepancies.append(follow_up)
                result.corrections.extend(apply_corrections(lot.id, [follow_up], store, ctx))

    except Exception as e:
        result.error = str(e) or type(e).__name__
        ctx.log.error(
            "reconciliation_lot_failed",
            tally_id=lot.id,
            error=result.error,
            error_type=type(e).__name__,
        )

    return result


def unfinished_result(lot: TallySheet, ctx: RunContext) -> LotReconciliation:
    """Errored result for a lot still running or queued at the deadline."""
    written = ctx.writes_for(lot.id)
    message = (
        PARTIAL_TIMEOUT_MESSAGE.format(count=len(written)) if written else TIMEOUT_MESSAGE
    )
    return LotReconciliation(
        tally_id=lot.id,
        tally_number=lot.tally_number,
        corrections=written,
        error=message,
    )


# ===================
# AGGREGATOR
# ===================

@dataclass
class ResultBucket:
    """Reduced results for one lot category."""

    category: LotCategory
    count: int = 0
    discrepancies: list = field(default_factory=list)
    corrections: list = field(default_factory=list)
    check_errors: int = 0

    @classmethod
    def from_result(cls, result: LotReconciliation) -> "ResultBucket":
        category = result.category
        if category == LotCategory.ERRORED:
            # A failed lot contributes its count and the writes that landed
            return cls(category=category, count=1, corrections=list(result.corrections))
        return cls(
            category=category,
            count=1,
            discrepancies=list(result.discrepancies),
            corrections=list(result.corrections),
            check_errors=result.check_errors,
        )

    def merge(self, other: "ResultBucket") -> "ResultBucket":
        """Combine two partial buckets of the same category."""
        if other.category != self.category:
            raise ValueError(f"Cannot merge {other.category} into {self.category}")
        return ResultBucket(
            category=self.category,
            count=self.count + other.count,
            discrepancies=self.discrepancies + other.discrepancies,
            corrections=self.corrections + other.corrections,
            check_errors=self.check_errors + other.check_errors,
        )


def aggregate(results: Iterable[LotReconciliation]) -> dict[LotCategory, ResultBucket]:
    """Group lot results by category. No side effects."""
    buckets: dict[LotCategory, ResultBucket] = {}
    for result in results:
        partial = ResultBucket.from_result(result)
        existing = buckets.get(partial.category)
        buckets[partial.category] = existing.merge(partial) if existing else partial
    return buckets


# ===================
# REPORT BUILDER
# ===================

def build_report(
    buckets: dict[LotCategory, ResultBucket],
    ctx: RunContext,
) -> ReconciliationReport:
    """Summarize reduced buckets into a report. No side effects."""
    clean = buckets.get(LotCategory.CLEAN, ResultBucket(LotCategory.CLEAN))
    flagged = buckets.get(LotCategory.DISCREPANCIES, ResultBucket(LotCategory.DISCREPANCIES))
    errored = buckets.get(LotCategory.ERRORED, ResultBucket(LotCategory.ERRORED))

    by_severity: dict[Severity, int] = empty_severity_counts()
    by_type: dict[DiscrepancyType, int] = {}
    details: list[Discrepancy] = []

    for discrepancy in flagged.discrepancies:
        by_severity[discrepancy.severity] += 1
        kind = DiscrepancyType(discrepancy.type)
        by_type[kind] = by_type.get(kind, 0) + 1
        details.append(discrepancy)

    corrections = flagged.corrections + errored.corrections
    applied = sum(1 for c in corrections if c.success)

    return ReconciliationReport(
        run_id=ctx.run_id,
        execution_date=ctx.started_at,
        total_lots=clean.count + flagged.count,
        clean_lots=clean.count,
        lots_with_discrepancies=flagged.count,
        lots_with_errors=errored.count,
        discrepancies_by_severity=by_severity,
        discrepancies_by_type=by_type,
        corrections_applied=applied,
        corrections_failed=len(corrections) - applied,
        check_errors=clean.check_errors + flagged.check_errors,
        auto_correct_enabled=ctx.auto_correct,
        checks_run=list(ctx.checks),
        details=details,
        execution_errors=list(ctx.execution_errors),
    )


# ===================
# SERVICE
# ===================

class TallyReconciliationService:
    """
    Runs reconciliation jobs.

    Holds only collaborators; everything about a run lives in its
    RunContext.
    """

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        settings_service: Optional[SettingsService] = None,
        alert_service: Optional[AlertService] = None,
    ):
        self.store = store or get_ledger_store()
        self.settings_service = settings_service or get_settings_service()
        self.alert_service = alert_service or get_alert_service()

    def build_context(
        self,
        checks: Optional[Iterable[Union[str, CheckType]]] = None,
        auto_correct: Optional[bool] = None,
        max_lots: Optional[int] = None,
    ) -> RunContext:
        """RunContext from settings plus per-run overrides."""
        if auto_correct is None:
            auto_correct = self.settings_service.is_auto_correct_enabled()

        return RunContext(
            auto_correct=auto_correct,
            checks=parse_checks(checks),
            page_size=settings.reconciliation_page_size,
            max_lots=max_lots or settings.reconciliation_max_lots,
            max_workers=settings.reconciliation_max_workers,
            timeout_seconds=settings.reconciliation_timeout_seconds,
        )

    def run(self, ctx: Optional[RunContext] = None) -> ReconciliationReport:
        """Execute one full reconciliation and return its report."""
        ctx = ctx or self.build_context()

        ctx.log.info(
            "reconciliation_started",
            auto_correct=ctx.auto_correct,
            checks=[c.value for c in ctx.checks],
            max_lots=ctx.max_lots,
            max_workers=ctx.max_workers,
        )

        self.map_lots(ctx)

        try:
            buckets = aggregate(ctx.results)
        except Exception as e:
            ctx.log.error("reconciliation_reduce_failed", error=str(e))
            ctx.record_error(ExecutionStage.REDUCE, str(e))
            buckets = {}

        report = build_report(buckets, ctx)
        return self.finalize_report(report, ctx)

    def map_lots(self, ctx: RunContext) -> list[LotReconciliation]:
        """
        Process every enumerated lot on a thread pool.

        Lots are submitted as the enumeration streams them in. The
        method returns once every lot has a result (the barrier before
        the reduce) or the job timeout expires. On timeout the run is
        cancelled before results are collected, so an unfinished lot gets an
        errored result listing exactly the corrections it wrote.
        """
        deadline = (
            time.monotonic() + ctx.timeout_seconds
            if ctx.timeout_seconds is not None
            else None
        )
        executor = ThreadPoolExecutor(
            max_workers=ctx.max_workers,
            thread_name_prefix=f"reconcile-{ctx.run_id}",
        )
        futures: dict = {}
        timed_out = False

        try:
            try:
                for lot in self.store.enumerate_active_lots(
                    page_size=ctx.page_size,
                    limit=ctx.max_lots,
                ):
                    futures[executor.submit(process_lot, lot, self.store, ctx)] = lot
            except Exception as e:
                ctx.log.error(
                    "reconciliation_enumeration_failed",
                    enumerated=len(futures),
                    error=str(e),
                )
                ctx.record_error(ExecutionStage.INPUT, str(e))

            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            _, pending = wait(futures, timeout=remaining)
            timed_out = bool(pending)
            if timed_out:
                # No correction lands after this; unfinished lots report what did
                ctx.cancel()

            for future, lot in futures.items():
                if not future.done():
                    future.cancel()
                    result = unfinished_result(lot, ctx)
                else:
                    try:
                        result = future.result()
                    except Exception as e:
                        result = LotReconciliation(
                            tally_id=lot.id,
                            tally_number=lot.tally_number,
                            corrections=ctx.writes_for(lot.id),
                            error=str(e) or type(e).__name__,
                        )

                if result.error:
                    ctx.record_error(ExecutionStage.MAP, result.error, key=lot.id)
                ctx.results.append(result)

            if timed_out:
                ctx.log.error(
                    "reconciliation_timed_out",
                    timeout_seconds=ctx.timeout_seconds,
                    unfinished=len(pending),
                )
        finally:
            # Running lots cannot be interrupted; after a timeout they can no longer write
            executor.shutdown(wait=not timed_out, cancel_futures=True)

        return ctx.results

    def finalize_report(
        self,
        report: ReconciliationReport,
        ctx: RunContext,
    ) -> ReconciliationReport:
        """Log execution errors, persist the report, alert if needed."""
        for error in report.execution_errors:
            ctx.log.error(
                "reconciliation_execution_error",
                stage=error.stage.value,
                key=error.key,
                error=error.message,
            )

        try:
            report.id = self.store.persist_report(report)
        except Exception as e:
            ctx.log.error(
                "reconciliation_report_persist_failed",
                error=str(e),
                report=report.model_dump(mode="json", exclude={"details"}),
            )
            report.execution_errors.append(
                ctx.record_error(ExecutionStage.SUMMARIZE, f"Report not persisted: {e}")
            )

        if should_alert(report):
            try:
                recipient = self.settings_service.get_admin_recipient()
            except Exception as e:
                ctx.log.error("reconciliation_alert_recipient_failed", error=str(e))
                recipient = None
            self.alert_service.send_reconciliation_alert(report, recipient)

        ctx.log.info(
            "reconciliation_complete",
            report_id=report.id,
            total=report.total_lots,
            clean=report.clean_lots,
            issues=report.lots_with_discrepancies,
            errored=report.lots_with_errors,
            corrections_applied=report.corrections_applied,
            corrections_failed=report.corrections_failed,
        )
        return report


def get_reconciliation_service() -> TallyReconciliationService:
    """Create a TallyReconciliationService wired to the shared adapters."""
    return TallyReconciliationService()
