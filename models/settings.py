"""
Settings schemas.

Settings are key-value pairs stored in the database so operators can
flip reconciliation behaviour without a redeploy.
"""

from pydantic import Field
from typing import Optional

from models.base import BaseSchema


# Keys read by the reconciliation job
AUTO_CORRECT_KEY = "tally_auto_correct"
ADMIN_RECIPIENT_KEY = "tally_admin_chat_id"


class SettingResponse(BaseSchema):
    """Setting row."""

    id: Optional[str] = Field(None, description="Setting UUID")
    key: str = Field(..., description="Setting key (unique)")
    value: str = Field(..., description="Setting value")
    description: Optional[str] = Field(None, description="Human-readable description")
    category: Optional[str] = Field(None, description="Setting category for grouping")
