"""
Run tally reconciliation from the command line or a scheduler.

Usage:
    # Nightly run with the configured auto-correct flag
    python scripts/run_reconciliation.py

    # Report only, two checks, first 200 tallies
    python scripts/run_reconciliation.py --no-auto-correct \
        --check balance_verification --check status_validation \
        --max-lots 200

Exits 1 when the run found ERROR/CRITICAL discrepancies or could not
finish cleanly, so the scheduler can flag it.
"""

import argparse
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from config import settings, configure_logging
from models.reconciliation import CheckType, ReconciliationReport, Severity
from services.reconciliation_service import get_reconciliation_service
from exceptions import AppError


def print_summary(report: ReconciliationReport) -> None:
    """Human-readable summary of a finished run."""
    by_severity = report.discrepancies_by_severity

    print("=" * 60)
    print(f"TALLY RECONCILIATION  run {report.run_id}")
    print("=" * 60)
    print(f"  Report ID:        {report.id or 'not persisted'}")
    print(f"  Tallies checked:  {report.total_lots}")
    print(f"  Clean:            {report.clean_lots}")
    print(f"  With issues:      {report.lots_with_discrepancies}")
    print(f"  Not processed:    {report.lots_with_errors}")
    print()
    for severity in reversed(list(Severity)):
        print(f"  {severity.value.upper():<10}{by_severity.get(severity, 0)}")
    print()
    print(f"  Auto-correct:     {'on' if report.auto_correct_enabled else 'off'}")
    print(f"  Corrections:      {report.corrections_applied} applied, "
          f"{report.corrections_failed} failed")

    if report.execution_errors:
        print()
        print("  Execution errors:")
        for error in report.execution_errors:
            key = f" [{error.key}]" if error.key else ""
            print(f"    - {error.stage.value}{key}: {error.message}")
    print("=" * 60)


def main():
    parser = argparse.ArgumentParser(
        description="Reconcile tally sheet balances against their allocations."
    )
    parser.add_argument(
        "--check",
        action="append",
        dest="checks",
        choices=[c.value for c in CheckType] + ["all"],
        help="Check to run; repeat for several (default: all)",
    )
    correct = parser.add_mutually_exclusive_group()
    correct.add_argument(
        "--auto-correct",
        action="store_true",
        default=None,
        help="Apply low-severity corrections regardless of the setting",
    )
    correct.add_argument(
        "--no-auto-correct",
        action="store_false",
        dest="auto_correct",
        default=None,
        help="Report only; never write corrections",
    )
    parser.add_argument(
        "--max-lots",
        type=int,
        default=None,
        help="Stop after this many tally sheets",
    )

    args = parser.parse_args()

    if args.max_lots is not None and args.max_lots < 1:
        print("ERROR: --max-lots must be at least 1")
        sys.exit(1)

    configure_logging(settings)

    try:
        service = get_reconciliation_service()
        ctx = service.build_context(
            checks=args.checks,
            auto_correct=args.auto_correct,
            max_lots=args.max_lots,
        )
        report = service.run(ctx)
    except AppError as e:
        print(f"ERROR: {e.message}")
        sys.exit(1)

    print_summary(report)

    failed = report.has_blocking_issues or bool(report.execution_errors)
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
