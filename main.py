"""
Tally reconciliation API.

FastAPI entry point. The nightly run is normally started by
scripts/run_reconciliation.py; the API exposes on-demand runs and the
stored reports.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog
from datetime import datetime, timezone

from config import settings, check_connection, configure_logging
from exceptions import AppError

configure_logging(settings)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup and verify the ledger tables are reachable."""
    logger.info(
        "api_starting",
        environment=settings.environment,
        auto_correct_default=settings.reconciliation_auto_correct,
        telegram=settings.telegram_configured,
    )

    db_status = check_connection()
    if db_status["status"] != "healthy":
        logger.error("ledger_unreachable", error=db_status.get("error"))
    else:
        logger.info(
            "ledger_reachable",
            tally_sheets=db_status["tally_sheets_count"],
            reports=db_status["reconciliation_reports_count"],
        )

    yield

    logger.info("api_stopping")


app = FastAPI(
    title="Tally Reconciliation",
    description="Checks tally sheet balances against allocations and repairs low-severity drift",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """Service and ledger database status."""
    db_status = check_connection()
    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "database": db_status,
    }


@app.get("/")
async def root():
    return {
        "name": "Tally Reconciliation API",
        "version": "0.1.0",
        "health": "/health",
        "run": "/api/reconciliation/run",
        "reports": "/api/reconciliation/reports",
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.warning("request_failed", path=request.url.path, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Anything unexpected becomes a 500 in the standard error body."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        },
    )


from routes.reconciliation import router as reconciliation_router

app.include_router(reconciliation_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.api_host, port=settings.api_port, reload=settings.debug)
