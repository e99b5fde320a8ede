"""
Correction policy for reconciliation discrepancies.

Only discrepancies that carry a correction AND rank below ERROR are
written back. ERROR and CRITICAL findings (large balance drift, negative
allocations, over-allocation) are reported and left for a person: a
blind overwrite could hide corruption or double-booking.
"""

from typing import Sequence

from models.reconciliation import (
    CorrectionOutcome,
    Discrepancy,
    DiscrepancyType,
    RunContext,
    Severity,
)
from services.ledger_store import LedgerStore


def is_auto_correctable(discrepancy: Discrepancy) -> bool:
    """Has a proposed correction and severity below ERROR."""
    correction = getattr(discrepancy, "correction", None)
    return correction is not None and discrepancy.severity.rank < Severity.ERROR.rank


def write_correction(
    tally_id: str,
    discrepancy: Discrepancy,
    store: LedgerStore,
    ctx: RunContext,
) -> CorrectionOutcome:
    """Write one correction; a failed write becomes success=False."""
    correction = discrepancy.correction
    outcome = CorrectionOutcome(
        type=DiscrepancyType(discrepancy.type),
        field=correction.field,
        old_value=correction.current_value,
        new_value=correction.correct_value,
        success=True,
    )

    try:
        store.update_lot_field(tally_id, correction.field, correction.correct_value)
    except Exception as e:
        ctx.log.error(
            "reconciliation_correction_failed",
            tally_id=tally_id,
            type=discrepancy.type,
            field=correction.field,
            error=str(e),
        )
        outcome.success = False
        outcome.error = str(e)
        return outcome

    ctx.log.info(
        "reconciliation_correction_applied",
        tally_id=tally_id,
        type=discrepancy.type,
        field=correction.field,
        old_value=str(correction.current_value),
        new_value=str(correction.correct_value),
    )
    return outcome


def apply_corrections(
    tally_id: str,
    discrepancies: Sequence[Discrepancy],
    store: LedgerStore,
    ctx: RunContext,
) -> list[CorrectionOutcome]:
    """
    Write eligible corrections for one tally sheet, one field at a time.

    A failed write is recorded with success=False and the remaining
    corrections still run. Once the run is cancelled nothing more is
    written.

    Returns:
        One outcome per attempted correction, in discrepancy order
    """
    outcomes: list[CorrectionOutcome] = []

    for discrepancy in discrepancies:
        if not is_auto_correctable(discrepancy):
            continue

        with ctx.write_lock:
            if ctx.cancelled.is_set():
                ctx.log.warning(
                    "reconciliation_corrections_skipped",
                    tally_id=tally_id,
                    field=discrepancy.correction.field,
                    reason="run cancelled",
                )
                break
            outcome = write_correction(tally_id, discrepancy, store, ctx)
            ctx.record_write(tally_id, outcome)

        outcomes.append(outcome)

    return outcomes
