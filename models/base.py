"""
Base schemas shared by all models.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a stored numeric value to Decimal.

    Blank, null and unparseable values read as zero, the same way the
    ledger screens treat an empty quantity field. NaN and infinity are
    not quantities and read as zero too.
    """
    if value is None or value == "":
        return Decimal("0")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return Decimal("0")
    return value if value.is_finite() else Decimal("0")
