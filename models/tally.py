"""
Tally sheet and allocation schemas.

A tally sheet is one physical lumber lot with a shrinking board-feet
balance. Allocation records are the reservation and consumption events
drawn against it. Both mirror the `tally_sheets` and `tally_allocations`
tables.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from models.base import BaseSchema, to_decimal


# ===================
# ENUMS
# ===================

class TallyStatus(str, Enum):
    """Lifecycle status of a tally sheet."""
    ACTIVE = "active"
    PARTIAL = "partial"
    CONSUMED = "consumed"
    VOID = "void"
    CLOSED = "closed"


# Excluded from reconciliation: no longer part of the live ledger
INACTIVE_TALLY_STATUSES = (TallyStatus.VOID, TallyStatus.CLOSED)


class AllocationStatus(str, Enum):
    """Status of an allocation record."""
    ALLOCATED = "allocated"
    CONSUMED = "consumed"
    VOIDED = "voided"


# Transaction type of the opening record written when a lot is tallied
INITIAL_TRANSACTION_TYPE = "initial"


# ===================
# TALLY SHEET
# ===================

class TallySheet(BaseSchema):
    """Tally sheet row with the fields the reconciliation checks read."""

    id: str = Field(..., description="Tally sheet ID")
    tally_number: Optional[str] = Field(None, description="Human-readable tally number")
    item_id: Optional[str] = Field(None, description="Item reference")
    location_id: Optional[str] = Field(None, description="Location reference")
    original_bf: Decimal = Field(Decimal("0"), description="Board feet when tallied")
    remaining_bf: Decimal = Field(Decimal("0"), description="Board feet still available")
    original_pieces: Decimal = Field(Decimal("0"), description="Pieces when tallied")
    remaining_pieces: Decimal = Field(Decimal("0"), description="Pieces still available")
    bf_per_piece: Decimal = Field(Decimal("0"), description="Board feet per piece")
    status: TallyStatus = Field(TallyStatus.ACTIVE, description="Lifecycle status")
    tally_date: Optional[date] = Field(None, description="Date the lot was tallied")

    @field_validator(
        "original_bf",
        "remaining_bf",
        "original_pieces",
        "remaining_pieces",
        "bf_per_piece",
        mode="before",
    )
    @classmethod
    def blank_quantity_is_zero(cls, v):
        return to_decimal(v)

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, v):
        return str(v) if v is not None else v


# ===================
# ALLOCATION
# ===================

class TallyAllocation(BaseSchema):
    """One reservation or consumption event against a tally sheet."""

    id: str = Field(..., description="Allocation ID")
    tally_id: str = Field(..., description="Owning tally sheet ID")
    board_feet: Decimal = Field(Decimal("0"), description="Board feet drawn from the lot")
    quantity: Decimal = Field(Decimal("0"), description="Pieces drawn from the lot")
    status: AllocationStatus = Field(AllocationStatus.ALLOCATED, description="Allocation status")
    source_transaction: Optional[str] = Field(None, description="Consuming transaction reference")
    transaction_type: Optional[str] = Field(INITIAL_TRANSACTION_TYPE, description="initial, sales_order, work_order, ...")
    allocation_date: Optional[date] = Field(None, description="Date of allocation")

    @field_validator("board_feet", "quantity", mode="before")
    @classmethod
    def blank_quantity_is_zero(cls, v):
        return to_decimal(v)

    @field_validator("id", "tally_id", mode="before")
    @classmethod
    def id_as_string(cls, v):
        return str(v) if v is not None else v

    @property
    def is_orphaned(self) -> bool:
        """No traceable source transaction on a non-opening record."""
        return (
            not (self.source_transaction or "").strip()
            and self.transaction_type != INITIAL_TRANSACTION_TYPE
        )
