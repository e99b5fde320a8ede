"""
Ledger Store - Supabase access for tally sheets, allocations and reports.

Everything the reconciliation engine reads or writes goes through here:
- enumerate_active_lots: lazy, paginated walk over live tally sheets
- sum_* / count_*: per-lot allocation aggregates used by the checks
- update_lot_field: the only write against a tally sheet (one column)
- persist_report / get_report(s): append-only reconciliation reports

Read and write failures surface as DatabaseError; callers decide how
far they propagate.
"""

from typing import Any, Callable, Iterator, Optional
from decimal import Decimal

import structlog

from config import get_supabase_client
from config.reconciliation import (
    TALLY_TABLE,
    ALLOCATION_TABLE,
    REPORT_TABLE,
    REMAINING_BF_FIELD,
    STATUS_FIELD,
    ALLOCATION_PAGE_SIZE,
)
from models.base import to_decimal
from models.tally import (
    TallySheet,
    TallyAllocation,
    AllocationStatus,
    INACTIVE_TALLY_STATUSES,
)
from models.reconciliation import (
    ReconciliationReport,
    ReconciliationReportSummary,
)
from exceptions import (
    DatabaseError,
    TallyNotFoundError,
    ReconciliationReportNotFoundError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


LOT_COLUMNS = (
    "id, tally_number, item_id, location_id, original_bf, remaining_bf, "
    "original_pieces, remaining_pieces, bf_per_piece, status, tally_date"
)

# Columns an automatic correction is allowed to touch
WRITABLE_LOT_FIELDS = frozenset({REMAINING_BF_FIELD, STATUS_FIELD})


class LedgerStore:
    """
    Tally ledger data access.

    Stateless apart from the client; safe to share between worker threads.
    """

    def __init__(self):
        self.db = get_supabase_client()

    # ===================
    # ENUMERATION
    # ===================

    def enumerate_active_lots(
        self,
        page_size: int = 500,
        limit: Optional[int] = None,
    ) -> Iterator[TallySheet]:
        """
        Yield every tally sheet that is not void or closed.

        Pages are requested lazily with explicit offsets, ordered by id,
        so a new call restarts from the first lot.

        Args:
            page_size: Rows per request
            limit: Stop after this many lots (no cap if None)

        Raises:
            DatabaseError: If a page cannot be read
        """
        excluded = [status.value for status in INACTIVE_TALLY_STATUSES]
        offset = 0
        yielded = 0

        while limit is None or yielded < limit:
            size = page_size if limit is None else min(page_size, limit - yielded)

            try:
                result = (
                    self.db.table(TALLY_TABLE)
                    .select(LOT_COLUMNS)
                    .not_.in_("status", excluded)
                    .order("id")
                    .range(offset, offset + size - 1)
                    .execute()
                )
            except Exception as e:
                logger.error("tally_enumeration_failed", offset=offset, error=str(e))
                raise DatabaseError("select", str(e), {"table": TALLY_TABLE, "offset": offset})

            rows = result.data or []
            logger.debug("tally_page_fetched", offset=offset, rows=len(rows))

            for row in rows:
                yield TallySheet(**row)
                yielded += 1

            if len(rows) < size:
                return
            offset += size

    # ===================
    # ALLOCATION AGGREGATES
    # ===================

    def _allocation_rows(
        self,
        tally_id: str,
        columns: str,
        narrow: Optional[Callable[[Any], Any]] = None,
    ) -> list[dict]:
        """Read every allocation row for a lot, page by page."""
        rows: list[dict] = []
        offset = 0

        try:
            while True:
                query = (
                    self.db.table(ALLOCATION_TABLE)
                    .select(columns)
                    .eq("tally_id", tally_id)
                )
                if narrow is not None:
                    query = narrow(query)
                result = (
                    query.order("id")
                    .range(offset, offset + ALLOCATION_PAGE_SIZE - 1)
                    .execute()
                )
                page = result.data or []
                rows.extend(page)
                if len(page) < ALLOCATION_PAGE_SIZE:
                    return rows
                offset += ALLOCATION_PAGE_SIZE
        except Exception as e:
            logger.error("allocation_read_failed", tally_id=tally_id, error=str(e))
            raise DatabaseError("select", str(e), {"table": ALLOCATION_TABLE, "tally_id": tally_id})

    def sum_consumed_board_feet(self, tally_id: str) -> Decimal:
        """Board feet over allocation records with status consumed."""
        rows = self._allocation_rows(
            tally_id,
            "id, board_feet",
            lambda q: q.eq("status", AllocationStatus.CONSUMED.value),
        )
        return sum((to_decimal(row.get("board_feet")) for row in rows), Decimal("0"))

    def count_negative_allocations(self, tally_id: str) -> int:
        """Allocation records with negative board feet."""
        rows = self._allocation_rows(
            tally_id,
            "id",
            lambda q: q.lt("board_feet", 0),
        )
        return len(rows)

    def sum_allocated_pieces(self, tally_id: str) -> Decimal:
        """Pieces over allocation records that are allocated or consumed."""
        rows = self._allocation_rows(
            tally_id,
            "id, quantity",
            lambda q: q.in_(
                "status",
                [AllocationStatus.ALLOCATED.value, AllocationStatus.CONSUMED.value],
            ),
        )
        return sum((to_decimal(row.get("quantity")) for row in rows), Decimal("0"))

    def count_orphaned_allocations(self, tally_id: str) -> int:
        """Allocation records that TallyAllocation.is_orphaned flags."""
        rows = self._allocation_rows(
            tally_id, "id, tally_id, source_transaction, transaction_type"
        )
        return sum(1 for row in rows if TallyAllocation(**row).is_orphaned)

    # ===================
    # WRITES
    # ===================

    def update_lot_field(self, tally_id: str, field: str, value: Any) -> None:
        """
        Write exactly one column on a tally sheet.

        Raises:
            ValidationError: If the column is not correctable
            TallyNotFoundError: If no row was updated
            DatabaseError: If the write fails
        """
        if field not in WRITABLE_LOT_FIELDS:
            raise ValidationError(
                f"Field {field} cannot be written by reconciliation",
                code="RECONCILIATION_FIELD_NOT_WRITABLE",
                details={"field": field, "writable": sorted(WRITABLE_LOT_FIELDS)},
            )

        stored = str(value) if isinstance(value, Decimal) else value

        try:
            result = (
                self.db.table(TALLY_TABLE)
                .update({field: stored})
                .eq("id", tally_id)
                .execute()
            )
        except Exception as e:
            logger.error("tally_update_failed", tally_id=tally_id, field=field, error=str(e))
            raise DatabaseError("update", str(e), {"tally_id": tally_id, "field": field})

        if not result.data:
            raise TallyNotFoundError(tally_id)

        logger.info("tally_field_updated", tally_id=tally_id, field=field, value=stored)

    # ===================
    # REPORTS
    # ===================

    def persist_report(self, report: ReconciliationReport) -> str:
        """
        Insert a reconciliation report and return its ID.

        Headline counters get their own columns for listing; the full
        report is stored as JSON in report_data.
        """
        payload = report.model_dump(mode="json", exclude={"id"})
        row = {
            "report_type": report.report_type,
            "run_id": report.run_id,
            "execution_date": payload["execution_date"],
            "total_lots": report.total_lots,
            "clean_lots": report.clean_lots,
            "lots_with_discrepancies": report.lots_with_discrepancies,
            "corrections_applied": report.corrections_applied,
            "report_data": payload,
        }

        try:
            result = self.db.table(REPORT_TABLE).insert(row).execute()
        except Exception as e:
            logger.error("report_insert_failed", run_id=report.run_id, error=str(e))
            raise DatabaseError("insert", str(e), {"table": REPORT_TABLE})

        if not result.data:
            raise DatabaseError("insert", "no row returned", {"table": REPORT_TABLE})

        report_id = str(result.data[0]["id"])
        logger.info("reconciliation_report_persisted", report_id=report_id, run_id=report.run_id)
        return report_id

    def get_reports(self, limit: int = 20) -> list[ReconciliationReportSummary]:
        """Most recent reports first, without details."""
        try:
            result = (
                self.db.table(REPORT_TABLE)
                .select("id, run_id, execution_date, total_lots, clean_lots, "
                        "lots_with_discrepancies, corrections_applied")
                .order("execution_date", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("get_reports_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return [ReconciliationReportSummary(**row) for row in result.data or []]

    def get_report(self, report_id: str) -> ReconciliationReport:
        """Full report by ID."""
        try:
            result = (
                self.db.table(REPORT_TABLE)
                .select("id, report_data")
                .eq("id", report_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_report_failed", report_id=report_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ReconciliationReportNotFoundError(report_id)

        row = result.data[0]
        return ReconciliationReport(**{**row["report_data"], "id": str(row["id"])})


# ===================
# SINGLETON
# ===================

_ledger_store: Optional[LedgerStore] = None


def get_ledger_store() -> LedgerStore:
    """Get or create LedgerStore instance."""
    global _ledger_store
    if _ledger_store is None:
        _ledger_store = LedgerStore()
    return _ledger_store
