"""Ban ledger schemas."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BanCreate(BaseModel):
    user_id: int = Field(gt=0)
    reason: str | None = None


class BanRead(BaseModel):
    id: int
    user_id: int
    reason: str | None = None
    banned_by: str
    banned_at: datetime
    unbanned_at: datetime | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
