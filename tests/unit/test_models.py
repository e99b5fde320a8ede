"""
Unit tests for quantity coercion and the reconciliation schemas.

Run: pytest tests/unit/test_models.py -v
"""

import pytest
from decimal import Decimal

from models.base import to_decimal
from models.tally import TallyAllocation, TallySheet
from models.reconciliation import CorrectionOutcome, DiscrepancyType, FieldCorrection
from tests.factories import TallySheetFactory, AllocationFactory


class TestToDecimal:
    """Tests for to_decimal()"""

    @pytest.mark.parametrize("value,expected", [
        (None, Decimal("0")),
        ("", Decimal("0")),
        ("abc", Decimal("0")),
        ("12.5", Decimal("12.5")),
        (7, Decimal("7")),
        (Decimal("3.25"), Decimal("3.25")),
    ])
    def test_coerces_stored_values(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize("value", ["NaN", "sNaN", "Infinity", "-Infinity", float("nan"), Decimal("Infinity")])
    def test_non_finite_reads_as_zero(self, value):
        result = to_decimal(value)

        assert result.is_finite()
        assert result == Decimal("0")

    def test_nan_balance_on_tally_sheet(self):
        lot = TallySheet(**TallySheetFactory.create(remaining_bf="NaN"))

        assert lot.remaining_bf == Decimal("0")


class TestIsOrphaned:
    """Tests for TallyAllocation.is_orphaned"""

    def test_missing_source_on_sales_draw(self):
        row = AllocationFactory.create(tally_id="lot-1", source_transaction="")

        assert TallyAllocation(**row).is_orphaned is True

    def test_initial_record_is_never_orphaned(self):
        row = AllocationFactory.create(
            tally_id="lot-1", source_transaction="", transaction_type="initial"
        )

        assert TallyAllocation(**row).is_orphaned is False

    def test_traced_record_is_not_orphaned(self):
        row = AllocationFactory.create(tally_id="lot-1")

        assert TallyAllocation(**row).is_orphaned is False


class TestFieldValues:
    """Correction values keep their type through a JSON round trip."""

    def test_balance_correction_reads_back_as_decimal(self):
        correction = FieldCorrection(
            field="remaining_bf",
            current_value=Decimal("650"),
            correct_value=Decimal("600"),
        )

        loaded = FieldCorrection(**correction.model_dump(mode="json"))

        assert loaded.correct_value == Decimal("600")
        assert isinstance(loaded.correct_value, Decimal)
        assert isinstance(loaded.current_value, Decimal)

    def test_status_correction_stays_text(self):
        loaded = FieldCorrection(field="status", current_value="active", correct_value="partial")

        assert loaded.correct_value == "partial"

    def test_outcome_values_read_back_as_decimal(self):
        outcome = CorrectionOutcome(
            type=DiscrepancyType.BALANCE_MISMATCH,
            field="remaining_bf",
            old_value=Decimal("650"),
            new_value=Decimal("600"),
            success=True,
        )

        loaded = CorrectionOutcome(**outcome.model_dump(mode="json"))

        assert loaded == outcome
        assert isinstance(loaded.new_value, Decimal)
