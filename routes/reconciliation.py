"""
Reconciliation API routes.

Triggers reconciliation runs and reads back persisted reports.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.reconciliation import (
    ReconciliationReport,
    ReconciliationReportListResponse,
    ReconciliationRunRequest,
)
from services.ledger_store import get_ledger_store
from services.reconciliation_service import get_reconciliation_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/reconciliation", tags=["Reconciliation"])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# RUN
# ===================

@router.post("/run", response_model=ReconciliationReport)
def run_reconciliation(request: Optional[ReconciliationRunRequest] = None):
    """
    Run a reconciliation now and return its report.

    Body (all optional):
    - checks: check names to run (default: all)
    - auto_correct: override the tally_auto_correct setting
    - max_lots: stop after this many tally sheets
    """
    request = request or ReconciliationRunRequest()
    try:
        service = get_reconciliation_service()
        ctx = service.build_context(
            checks=request.checks,
            auto_correct=request.auto_correct,
            max_lots=request.max_lots,
        )
        return service.run(ctx)

    except Exception as e:
        return handle_error(e)


# ===================
# REPORTS
# ===================

@router.get("/reports", response_model=ReconciliationReportListResponse)
def list_reports(
    limit: int = Query(20, ge=1, le=100, description="Number of reports"),
):
    """List recent reconciliation reports, newest first."""
    try:
        reports = get_ledger_store().get_reports(limit=limit)
        return ReconciliationReportListResponse(data=reports, total=len(reports))

    except Exception as e:
        return handle_error(e)


@router.get("/reports/{report_id}", response_model=ReconciliationReport)
def get_report(report_id: str):
    """
    Get a full reconciliation report, including per-lot discrepancies.

    Args:
        report_id: Report UUID
    """
    try:
        return get_ledger_store().get_report(report_id)

    except Exception as e:
        return handle_error(e)
