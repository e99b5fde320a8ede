"""
Shared test fixtures.

The Supabase mock applies the filters the ledger store uses (eq, lt,
in_, not_.in_, order, range, limit) to in-memory rows, so LedgerStore
runs unchanged against it.
"""

import os
import sys
from pathlib import Path

# Add project directory to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch
from typing import Generator, Optional
from uuid import uuid4

from models.reconciliation import RunContext
from services.ledger_store import LedgerStore
from services.settings_service import SettingsService
from services.alert_service import AlertService
from services.reconciliation_service import TallyReconciliationService


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder that filters the table's rows."""

    def __init__(self, table: "MockSupabaseTable"):
        self._table = table
        self._filters = []
        self._negate = False
        self._order = None
        self._range = None
        self._limit = None
        self._update = None
        self._insert = None

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        self._insert = [data] if isinstance(data, dict) else list(data)
        return self

    def update(self, data):
        self._update = data
        return self

    @property
    def not_(self):
        self._negate = True
        return self

    def _add(self, predicate):
        if self._negate:
            self._negate = False
            self._filters.append(lambda row: not predicate(row))
        else:
            self._filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._add(lambda row: row.get(column) == value)

    def lt(self, column, value):
        return self._add(
            lambda row: row.get(column) is not None
            and Decimal(str(row[column])) < Decimal(str(value))
        )

    def in_(self, column, values):
        return self._add(lambda row: row.get(column) in values)

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def range(self, start, end):
        self._range = (start, end)
        self._table.ranges.append((start, end))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self) -> MockSupabaseResponse:
        if self._table.error is not None:
            raise self._table.error

        if self._insert is not None:
            inserted = []
            for item in self._insert:
                row = {"id": str(uuid4()), **item}
                self._table.rows.append(row)
                inserted.append(row)
            return MockSupabaseResponse(data=inserted)

        rows = [row for row in self._table.rows if all(f(row) for f in self._filters)]

        if self._update is not None:
            for row in rows:
                row.update(self._update)
            return MockSupabaseResponse(data=rows)

        if self._order:
            column, desc = self._order
            rows = sorted(rows, key=lambda row: row.get(column), reverse=desc)
        count = len(rows)
        if self._range:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]

        return MockSupabaseResponse(data=[dict(row) for row in rows], count=count)


class MockSupabaseTable:
    """Mock Supabase table holding rows in memory."""

    def __init__(self, rows: list = None):
        self.rows = rows if rows is not None else []
        self.ranges: list[tuple] = []
        self.error: Optional[Exception] = None

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self)

    def insert(self, data):
        return MockSupabaseQuery(self).insert(data)

    def update(self, data):
        return MockSupabaseQuery(self).update(data)

    def fail_with(self, error: Exception):
        """Make every following query on this table raise."""
        self.error = error


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table."""
        self._tables[table_name] = MockSupabaseTable(list(data))

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table, creating an empty one on first use."""
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable()
        return self._tables[name]

    def rows(self, table_name: str) -> list:
        return self.table(table_name).rows


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("tally_sheets", [
                TallySheetFactory.create(id="lot-1")
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Any LedgerStore or SettingsService built inside the test gets the mock.
    """
    with patch("services.ledger_store.get_supabase_client", return_value=mock_supabase):
        with patch("services.settings_service.get_supabase_client", return_value=mock_supabase):
            yield mock_supabase


@pytest.fixture
def ledger(mock_db) -> LedgerStore:
    """LedgerStore over the in-memory Supabase mock."""
    return LedgerStore()


@pytest.fixture
def ctx() -> RunContext:
    """Run context with auto-correct on and a small pool."""
    return RunContext(auto_correct=True, max_workers=2)


@pytest.fixture
def settings_service() -> MagicMock:
    """SettingsService with auto-correct on and an admin chat configured."""
    service = MagicMock(spec=SettingsService)
    service.is_auto_correct_enabled.return_value = True
    service.get_admin_recipient.return_value = "-1001234567"
    return service


@pytest.fixture
def alert_service() -> MagicMock:
    """AlertService that records sends instead of calling Telegram."""
    service = MagicMock(spec=AlertService)
    service.send_reconciliation_alert.return_value = True
    return service


@pytest.fixture
def reconciliation_service(ledger, settings_service, alert_service) -> TallyReconciliationService:
    """Service wired to the in-memory ledger and mocked collaborators."""
    return TallyReconciliationService(
        store=ledger,
        settings_service=settings_service,
        alert_service=alert_service,
    )


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    The lifespan (database check) only runs inside a `with` block, so
    plain requests never touch Supabase.
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
