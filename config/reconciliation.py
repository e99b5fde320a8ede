"""
Tally reconciliation constants.

Thresholds are fixed business rules rather than settings: changing them
changes which discrepancies are auto-corrected.
"""

from decimal import Decimal

# =============================================================================
# BALANCE THRESHOLDS
# =============================================================================

# Variance at or below this is floating-point noise from BF conversions
BALANCE_TOLERANCE_BF = Decimal("0.01")

# Variance above this share of original BF is an error, below it a warning
BALANCE_ERROR_RATIO = Decimal("0.05")

# =============================================================================
# TABLES AND COLUMNS
# =============================================================================

TALLY_TABLE = "tally_sheets"
ALLOCATION_TABLE = "tally_allocations"
REPORT_TABLE = "reconciliation_reports"

# Columns the correction policy may write
REMAINING_BF_FIELD = "remaining_bf"
STATUS_FIELD = "status"

# =============================================================================
# REPORTS
# =============================================================================

REPORT_TYPE = "tally_reconciliation"

# Rows fetched per request when reading allocation records
ALLOCATION_PAGE_SIZE = 1000
