"""Package subscription schemas."""
from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator

from mutual_aid.models.user_package import UserPackageStatus


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SubscribeIn(BaseModel):
    package_id: str | None = None


class ApproveIn(BaseModel):
    maturity_date: datetime | None = None

    @field_validator("maturity_date")
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        return _aware(value)


class ExtendIn(BaseModel):
    new_maturity_date: datetime | None = None

    @field_validator("new_maturity_date")
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        return _aware(value)


class UserPackageRead(BaseModel):
    id: int
    user_id: int
    package_id: str
    status: UserPackageStatus
    admin_approved: bool
    maturity_date: datetime | None = None
    extended_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
