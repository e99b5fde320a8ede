"""
Tally reconciliation checks.

Four independent checks, each run against one tally sheet:
1. Balance verification - remaining BF vs original minus consumed
2. Allocation integrity - negative allocations and over-allocated pieces
3. Status validation - status vs the status implied by the balance
4. Orphan detection - allocations with no source transaction

Each check is an evaluate_* function (pure: lot + aggregate in, verdict
out) behind a verify_* loader that reads the one aggregate it needs from
the ledger store. Checks never write; corrections are proposed on the
discrepancy and applied by services/correction_service.py.
"""

from decimal import Decimal
from typing import Callable

from config.reconciliation import REMAINING_BF_FIELD, STATUS_FIELD
from models.tally import TallySheet, TallyStatus
from models.reconciliation import (
    CheckType,
    CheckResult,
    Severity,
    FieldCorrection,
    BalanceMismatch,
    NegativeAllocations,
    OverAllocation,
    StatusMismatch,
    OrphanedAllocations,
    RunContext,
)
from services.ledger_store import LedgerStore


# ===================
# STATUS DERIVATION
# ===================

def derive_expected_status(
    current: TallyStatus,
    remaining_bf: Decimal,
    original_bf: Decimal,
) -> TallyStatus:
    """
    Status a tally sheet should carry given its balance.

    - remaining <= 0                          -> consumed
    - 0 < remaining < original, was active    -> partial
    - remaining == original, was partial      -> active
    - anything else keeps the current status
    """
    if remaining_bf <= 0:
        return TallyStatus.CONSUMED
    if remaining_bf < original_bf and current == TallyStatus.ACTIVE:
        return TallyStatus.PARTIAL
    if remaining_bf == original_bf and current == TallyStatus.PARTIAL:
        return TallyStatus.ACTIVE
    return current


# ===================
# EVALUATORS (pure)
# ===================

def evaluate_balance(
    lot: TallySheet,
    consumed_bf: Decimal,
    ctx: RunContext,
) -> CheckResult:
    """Compare recorded remaining BF with original minus consumed."""
    original = lot.original_bf
    recorded = lot.remaining_bf
    calculated = original - consumed_bf
    variance = abs(recorded - calculated)

    check = CheckResult(
        type=CheckType.BALANCE_VERIFICATION,
        details={
            "original_bf": original,
            "recorded_remaining": recorded,
            "consumed_bf": consumed_bf,
            "calculated_remaining": calculated,
            "variance": variance,
        },
    )

    if variance <= ctx.balance_tolerance:
        return check

    severity = (
        Severity.ERROR
        if variance > original * ctx.balance_error_ratio
        else Severity.WARNING
    )

    # Never write a balance outside [0, original]
    corrected = min(max(calculated, Decimal("0")), original)
    correction = None
    if corrected != recorded:
        correction = FieldCorrection(
            field=REMAINING_BF_FIELD,
            current_value=recorded,
            correct_value=corrected,
        )

    check.passed = False
    check.discrepancies.append(
        BalanceMismatch(
            severity=severity,
            message=(
                f"Balance mismatch: Recorded {recorded:.2f} BF, "
                f"Calculated {calculated:.2f} BF"
            ),
            tally_id=lot.id,
            recorded_bf=recorded,
            calculated_bf=calculated,
            variance=variance,
            correction=correction,
        )
    )
    return check


def evaluate_allocation_integrity(
    lot: TallySheet,
    negative_count: int,
    allocated_pieces: Decimal,
) -> CheckResult:
    """Flag negative allocations and more pieces drawn than tallied."""
    original_pieces = lot.original_pieces

    check = CheckResult(
        type=CheckType.ALLOCATION_INTEGRITY,
        details={
            "negative_allocations": negative_count,
            "allocated_pieces": allocated_pieces,
            "original_pieces": original_pieces,
        },
    )

    if negative_count > 0:
        check.passed = False
        check.discrepancies.append(
            NegativeAllocations(
                severity=Severity.ERROR,
                message=f"{negative_count} allocation(s) with negative BF found",
                tally_id=lot.id,
                negative_count=negative_count,
            )
        )

    # Lots tallied without a piece count cannot be over-allocated
    if original_pieces > 0 and allocated_pieces > original_pieces:
        check.passed = False
        check.discrepancies.append(
            OverAllocation(
                severity=Severity.CRITICAL,
                message=(
                    f"Over-allocation: {allocated_pieces} pieces allocated "
                    f"vs {original_pieces} original"
                ),
                tally_id=lot.id,
                allocated_pieces=allocated_pieces,
                original_pieces=original_pieces,
                over_allocated=allocated_pieces - original_pieces,
            )
        )

    return check


def status_mismatch(tally_id: str, current: TallyStatus, expected: TallyStatus) -> StatusMismatch:
    """Status discrepancy proposing expected in place of current."""
    return StatusMismatch(
        severity=Severity.WARNING,
        message=f"Status should be '{expected.value}' but is '{current.value}'",
        tally_id=tally_id,
        current_status=current.value,
        expected_status=expected.value,
        correction=FieldCorrection(
            field=STATUS_FIELD,
            current_value=current.value,
            correct_value=expected.value,
        ),
    )


def evaluate_status(lot: TallySheet) -> CheckResult:
    """Compare the recorded status with the one derived from the balance."""
    current = lot.status
    expected = derive_expected_status(current, lot.remaining_bf, lot.original_bf)

    check = CheckResult(
        type=CheckType.STATUS_VALIDATION,
        details={
            "current_status": current.value,
            "expected_status": expected.value,
            "remaining_bf": lot.remaining_bf,
            "original_bf": lot.original_bf,
        },
    )

    if expected != current:
        check.passed = False
        check.discrepancies.append(status_mismatch(lot.id, current, expected))

    return check


def evaluate_orphans(lot: TallySheet, orphan_count: int) -> CheckResult:
    """Flag allocations whose source transaction is missing."""
    check = CheckResult(
        type=CheckType.ORPHAN_DETECTION,
        details={"orphaned_allocations": orphan_count},
    )

    if orphan_count > 0:
        check.passed = False
        check.discrepancies.append(
            OrphanedAllocations(
                severity=Severity.WARNING,
                message=f"{orphan_count} allocation(s) with missing source transactions",
                tally_id=lot.id,
                orphan_count=orphan_count,
            )
        )

    return check


# ===================
# LOADERS
# ===================

def verify_balance(lot: TallySheet, store: LedgerStore, ctx: RunContext) -> CheckResult:
    return evaluate_balance(lot, store.sum_consumed_board_feet(lot.id), ctx)


def verify_allocations(lot: TallySheet, store: LedgerStore, ctx: RunContext) -> CheckResult:
    return evaluate_allocation_integrity(
        lot,
        store.count_negative_allocations(lot.id),
        store.sum_allocated_pieces(lot.id),
    )


def validate_status(lot: TallySheet, store: LedgerStore, ctx: RunContext) -> CheckResult:
    return evaluate_status(lot)


def detect_orphans(lot: TallySheet, store: LedgerStore, ctx: RunContext) -> CheckResult:
    return evaluate_orphans(lot, store.count_orphaned_allocations(lot.id))


CheckFn = Callable[[TallySheet, LedgerStore, RunContext], CheckResult]

CHECK_REGISTRY: dict[CheckType, CheckFn] = {
    CheckType.BALANCE_VERIFICATION: verify_balance,
    CheckType.ALLOCATION_INTEGRITY: verify_allocations,
    CheckType.STATUS_VALIDATION: validate_status,
    CheckType.ORPHAN_DETECTION: detect_orphans,
}


def run_check(
    check_type: CheckType,
    lot: TallySheet,
    store: LedgerStore,
    ctx: RunContext,
) -> CheckResult:
    """
    Run one check, turning any failure into a failed CheckResult.

    A store read error fails only this check; the other checks for the
    same lot still run.
    """
    try:
        return CHECK_REGISTRY[check_type](lot, store, ctx)
    except Exception as e:
        ctx.log.warning(
            "reconciliation_check_failed",
            tally_id=lot.id,
            check=check_type.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return CheckResult(type=check_type, passed=False, error=str(e))
